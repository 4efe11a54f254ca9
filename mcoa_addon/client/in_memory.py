"""Module for an in memory API client."""

from collections import Counter
from collections.abc import Callable, Iterable
import copy
import logging
from typing import Any
import uuid

from mcoa_addon.exceptions import (
    AlreadyExistsError,
    ConflictError,
    ObjectNotFoundError,
)
from mcoa_addon.manifest import NamedResource

from .client import Client, EventType, WatchEvent

_LOGGER = logging.getLogger(__name__)


def _labels_match(obj: dict[str, Any], labels: dict[str, str] | None) -> bool:
    if not labels:
        return True
    obj_labels = obj.get("metadata", {}).get("labels") or {}
    return all(obj_labels.get(key) == value for key, value in labels.items())


class InMemoryClient(Client):
    """In-memory implementation of the Client interface.

    Objects are keyed by NamedResource and carry a monotonically increasing
    resourceVersion and a uid derived from their identity. Writes are counted
    per verb so callers can assert on the number of API writes issued.
    """

    def __init__(self, objects: Iterable[dict[str, Any]] | None = None) -> None:
        """Initialize the InMemoryClient."""
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._listeners: list[Callable[[WatchEvent], None]] = []
        self._version = 0
        self.writes: Counter[str] = Counter()
        for obj in objects or ():
            self.add_object(obj)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def add_object(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Add an object to the client, bypassing write accounting."""
        resource_id = NamedResource.from_doc(obj)
        stored = copy.deepcopy(obj)
        stored["metadata"]["resourceVersion"] = self._next_version()
        old = self._objects.get(resource_id)
        if "uid" not in stored["metadata"]:
            stored["metadata"]["uid"] = (
                old["metadata"]["uid"]
                if old is not None
                else str(uuid.uuid5(uuid.NAMESPACE_URL, str(resource_id)))
            )
        self._objects[resource_id] = stored
        if old is None:
            self._fire_event(WatchEvent(EventType.ADDED, copy.deepcopy(stored)))
        else:
            self._fire_event(
                WatchEvent(EventType.MODIFIED, copy.deepcopy(stored), copy.deepcopy(old))
            )
        return copy.deepcopy(stored)

    def _lookup(self, resource_id: NamedResource) -> dict[str, Any]:
        if (obj := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"{resource_id} not found")
        return obj

    async def get(self, kind: str, namespace: str | None, name: str) -> dict[str, Any]:
        """Return an object or raise ObjectNotFoundError."""
        return copy.deepcopy(self._lookup(NamedResource(kind, namespace or None, name)))

    async def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally filtered by namespace and labels."""
        return [
            copy.deepcopy(obj)
            for resource_id, obj in sorted(self._objects.items())
            if resource_id.kind == kind
            and (namespace is None or resource_id.namespace == namespace)
            and _labels_match(obj, labels)
        ]

    async def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create an object or raise AlreadyExistsError."""
        resource_id = NamedResource.from_doc(obj)
        if resource_id in self._objects:
            raise AlreadyExistsError(f"{resource_id} already exists")
        _LOGGER.debug("Creating object %s", resource_id)
        self.writes["create"] += 1
        return self.add_object(obj)

    async def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Update an object, preserving its status."""
        resource_id = NamedResource.from_doc(obj)
        existing = self._lookup(resource_id)
        self._check_version(resource_id, obj, existing)
        _LOGGER.debug("Updating object %s", resource_id)
        self.writes["update"] += 1
        updated = copy.deepcopy(obj)
        updated.pop("status", None)
        if "status" in existing:
            updated["status"] = copy.deepcopy(existing["status"])
        return self.add_object(updated)

    async def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Update only the status of an object."""
        resource_id = NamedResource.from_doc(obj)
        existing = self._lookup(resource_id)
        self._check_version(resource_id, obj, existing)
        _LOGGER.debug("Updating status of object %s", resource_id)
        self.writes["update_status"] += 1
        updated = copy.deepcopy(existing)
        updated["status"] = copy.deepcopy(obj.get("status"))
        return self.add_object(updated)

    async def delete(self, kind: str, namespace: str | None, name: str) -> None:
        """Delete an object or raise ObjectNotFoundError."""
        resource_id = NamedResource(kind, namespace or None, name)
        existing = self._lookup(resource_id)
        _LOGGER.debug("Deleting object %s", resource_id)
        self.writes["delete"] += 1
        del self._objects[resource_id]
        self._fire_event(WatchEvent(EventType.DELETED, copy.deepcopy(existing)))

    @property
    def total_writes(self) -> int:
        """Return the number of writes issued through the client API."""
        return sum(self.writes.values())

    def add_listener(self, callback: Callable[[WatchEvent], None]) -> Callable[[], None]:
        """Register a callback invoked for every change."""

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        self._listeners.append(callback)
        return remove

    def _check_version(
        self, resource_id: NamedResource, obj: dict[str, Any], existing: dict[str, Any]
    ) -> None:
        version = obj.get("metadata", {}).get("resourceVersion")
        if version and version != existing["metadata"]["resourceVersion"]:
            raise ConflictError(
                f"{resource_id} has been modified (resourceVersion {version} is stale)"
            )

    def _fire_event(self, event: WatchEvent) -> None:
        for cb in list(self._listeners):  # Iterate over a copy for safe removal
            try:
                cb(event)
            except Exception:
                _LOGGER.exception("Client listener callback failed for event %s", event.type)
