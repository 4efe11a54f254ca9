"""Client interface for reading and writing objects on the hub API."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Enum for watch events."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """A change to an object observed on the API."""

    type: EventType
    obj: dict[str, Any]
    """The object after the change, or the last known state for DELETED."""

    old: dict[str, Any] | None = None
    """The object before the change, for MODIFIED events."""

    @property
    def kind(self) -> str:
        return self.obj.get("kind", "")


class Client(ABC):
    """Abstract base class for the hub API client.

    Objects are raw kubernetes documents. Every call may suspend and every
    call raises an `ApiException` subclass on failure.
    """

    @abstractmethod
    async def get(self, kind: str, namespace: str | None, name: str) -> dict[str, Any]:
        """Return an object or raise ObjectNotFoundError."""

    @abstractmethod
    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally filtered by namespace and labels."""

    @abstractmethod
    async def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create an object or raise AlreadyExistsError."""

    @abstractmethod
    async def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Update an object.

        Raises ConflictError when the object carries a stale resourceVersion.
        """

    @abstractmethod
    async def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Update only the status of an object."""

    @abstractmethod
    async def delete(self, kind: str, namespace: str | None, name: str) -> None:
        """Delete an object or raise ObjectNotFoundError."""

    @abstractmethod
    def add_listener(self, callback: Callable[[WatchEvent], None]) -> Callable[[], None]:
        """Register a callback invoked for every change.

        Returns a callable that can be called to remove the listener.
        """
