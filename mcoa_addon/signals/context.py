"""Inputs shared by all signal composers."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from mcoa_addon.manifest import ConfigKey, ManagedCluster, ManagedClusterAddOn, Secret
from mcoa_addon.options import Options


@dataclass(frozen=True)
class SignalContext:
    """Everything a signal composer may read to build its values."""

    cluster: ManagedCluster
    addon: ManagedClusterAddOn
    options: Options
    is_hub: bool = False

    credentials: dict[str, dict[str, Secret]] = field(default_factory=dict)
    """Fetched credentials of each signal, keyed by target."""

    references: dict[ConfigKey, dict[str, Any]] = field(default_factory=dict)
    """Referenced configuration objects of the addon that exist on the API."""

    def objects(self, kind: str) -> list[dict[str, Any]]:
        """Return the referenced objects of a kind ordered by key."""
        return [
            self.references[key] for key in sorted(self.references) if key.kind == kind
        ]

    def secrets(self, signal: str) -> list[dict[str, Any]]:
        """Return the credentials of a signal as values ordered by target."""
        return [
            {
                "name": secret.name,
                "namespace": secret.namespace or "",
                "target": target,
                "data": dict(secret.data or {}),
            }
            for target, secret in sorted(self.credentials.get(signal, {}).items())
        ]


Composer = Callable[[SignalContext], dict[str, Any] | None]
"""Builds the values sub-tree of a signal, None when there is nothing to deploy."""


@dataclass(frozen=True)
class Signal:
    """A signal pipeline contributing a section to the values bundle."""

    name: str
    """The well known key of the section of the signal."""

    compose: Composer

    disabled: Callable[[Options], bool] = lambda options: False
    """Top level flag gating the composition of the section."""

    auth_kinds: tuple[str, ...] = ()
    """Kinds of the signal objects whose annotations request credentials."""

    common_name: str = ""
    """Common name of the client certificates requested for the signal."""


def object_value(doc: dict[str, Any]) -> dict[str, Any]:
    """Return the identity and spec of a referenced object as values."""
    metadata = doc.get("metadata", {})
    return {
        "name": metadata.get("name", ""),
        "namespace": metadata.get("namespace", ""),
        "spec": doc.get("spec") or {},
    }
