"""Reconcile requests and results."""

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class Request:
    """Identity of an addon installation to reconcile."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class Result:
    """Outcome of a successful reconcile."""

    requeue: bool = False
    """Process the request again after the requeue delay."""

    requeue_after: float | None = None
    """Seconds to wait before processing the request again."""
