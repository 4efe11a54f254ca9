"""Mapping of watch events to reconcile requests.

Events fall in three classes:

- Cluster specific objects (Secrets, ConfigMaps and ManagedClusters) map to
  the addon installation of their cluster namespace.
- Cluster wide configuration objects fan out to every addon installation of
  the fleet, restricted to the members of a cluster set when the object
  carries the cluster set annotation.
- Objects embedded in envelopes map, through the reference cache, to the
  installations whose envelopes reference them.
"""

import logging
from typing import Any

from mcoa_addon.client import Client, EventType, WatchEvent
from mcoa_addon.exceptions import ObjectNotFoundError
from mcoa_addon.manifest import (
    ADDON_DEPLOYMENT_CONFIG_KIND,
    ANNOTATION_CLUSTER_SET,
    CLUSTER_LOG_FORWARDER_KIND,
    CLUSTER_MANAGEMENT_ADDON_KIND,
    CONFIG_MAP_KIND,
    INSTRUMENTATION_KIND,
    LABEL_ADDON_NAME,
    LABEL_CLUSTER_SET,
    MANAGED_CLUSTER_ADDON_KIND,
    MANAGED_CLUSTER_KIND,
    MANIFEST_WORK_KIND,
    OPENTELEMETRY_COLLECTOR_KIND,
    PROMETHEUS_AGENT_KIND,
    PROMETHEUS_RULE_KIND,
    SCRAPE_CONFIG_KIND,
    SECRET_KIND,
    ConfigKey,
    ManifestWork,
)
from mcoa_addon.reference_cache import ReferenceCache

from .request import Request

__all__ = [
    "EventMapper",
    "CLUSTER_WIDE_KINDS",
]

_LOGGER = logging.getLogger(__name__)

CLUSTER_SPECIFIC_KINDS = {SECRET_KIND, CONFIG_MAP_KIND}

CLUSTER_WIDE_KINDS = {
    ADDON_DEPLOYMENT_CONFIG_KIND,
    CLUSTER_MANAGEMENT_ADDON_KIND,
    CLUSTER_LOG_FORWARDER_KIND,
    OPENTELEMETRY_COLLECTOR_KIND,
    INSTRUMENTATION_KIND,
    PROMETHEUS_AGENT_KIND,
    SCRAPE_CONFIG_KIND,
    PROMETHEUS_RULE_KIND,
}

_DATA_KINDS = {SECRET_KIND, CONFIG_MAP_KIND}


def _content(doc: dict[str, Any] | None) -> Any:
    """Return the payload of an object compared to detect real changes."""
    if doc is None:
        return None
    if doc.get("kind") in _DATA_KINDS:
        return doc.get("data") or {}
    return doc.get("spec") or {}


class EventMapper:
    """Maps watch events of the hub API to addon reconcile requests."""

    def __init__(self, client: Client, cache: ReferenceCache, addon_name: str) -> None:
        """Initialize EventMapper."""
        self._client = client
        self._cache = cache
        self._addon_name = addon_name

    async def map(self, event: WatchEvent) -> list[Request]:
        """Return the de-duplicated, ordered requests triggered by an event."""
        obj = event.obj
        kind = event.kind
        requests: set[Request] = set()
        if kind == MANIFEST_WORK_KIND:
            if event.type == EventType.DELETED:
                envelope = ManifestWork.parse_doc(obj)
                self._cache.delete(envelope.namespace, envelope.name)
            return []
        if kind == MANAGED_CLUSTER_ADDON_KIND:
            metadata = obj.get("metadata", {})
            if event.type != EventType.DELETED and metadata.get("name") == self._addon_name:
                requests.add(Request(namespace=metadata["namespace"], name=metadata["name"]))
        elif kind == MANAGED_CLUSTER_KIND:
            requests.update(
                await self._addon_request(obj.get("metadata", {}).get("name", ""))
            )
        elif kind in CLUSTER_SPECIFIC_KINDS:
            requests.update(await self.cluster_specific(obj))
            requests.update(await self.envelope_references(event))
        elif kind in CLUSTER_WIDE_KINDS:
            requests.update(await self.cluster_wide(obj))
        else:
            _LOGGER.debug("Ignoring event for unwatched kind %s", kind)
        return sorted(requests)

    async def cluster_specific(self, obj: dict[str, Any]) -> list[Request]:
        """Map an object of a cluster namespace to the addon installed there."""
        return await self._addon_request(obj.get("metadata", {}).get("namespace", ""))

    async def cluster_wide(self, obj: dict[str, Any]) -> list[Request]:
        """Fan out an object to all addon installations in its scope."""
        docs = await self._client.list(
            MANAGED_CLUSTER_ADDON_KIND, labels={LABEL_ADDON_NAME: self._addon_name}
        )
        namespaces = {doc["metadata"]["namespace"] for doc in docs}
        annotations = obj.get("metadata", {}).get("annotations") or {}
        if cluster_set := annotations.get(ANNOTATION_CLUSTER_SET):
            members = {
                cluster["metadata"]["name"]
                for cluster in await self._client.list(
                    MANAGED_CLUSTER_KIND, labels={LABEL_CLUSTER_SET: cluster_set}
                )
            }
            _LOGGER.debug("Cluster set %s has members %s", cluster_set, sorted(members))
            namespaces &= members
        return [
            Request(namespace=namespace, name=self._addon_name)
            for namespace in sorted(namespaces)
        ]

    async def envelope_references(self, event: WatchEvent) -> list[Request]:
        """Map an object to the installations whose envelopes reference it.

        Changes that leave the object payload byte-identical to the old
        object, or to the copy already embedded in an envelope, are ignored
        so that writes issued by the addon itself do not loop.
        """
        key = ConfigKey.from_doc(event.obj)
        if not (namespaces := self._cache.namespaces(key)):
            return []
        content = _content(event.obj)
        if event.type == EventType.MODIFIED and _content(event.old) == content:
            _LOGGER.debug("Ignoring %s with unchanged content", key)
            return []

        requests = []
        for namespace in namespaces:
            if event.type != EventType.DELETED and await self._embedded_unchanged(
                namespace, key, content
            ):
                _LOGGER.debug("Envelopes in %s already carry %s", namespace, key)
                continue
            requests.extend(await self._addon_request(namespace))
        return requests

    async def _embedded_unchanged(self, namespace: str, key: ConfigKey, content: Any) -> bool:
        docs = await self._client.list(
            MANIFEST_WORK_KIND,
            namespace=namespace,
            labels={LABEL_ADDON_NAME: self._addon_name},
        )
        embedded = [
            manifest
            for doc in docs
            if (manifest := ManifestWork.parse_doc(doc).find_manifest(key)) is not None
        ]
        return bool(embedded) and all(_content(manifest) == content for manifest in embedded)

    async def _addon_request(self, namespace: str) -> list[Request]:
        if not namespace:
            return []
        try:
            await self._client.get(MANAGED_CLUSTER_ADDON_KIND, namespace, self._addon_name)
        except ObjectNotFoundError:
            _LOGGER.debug("No addon %s in namespace %s", self._addon_name, namespace)
            return []
        return [Request(namespace=namespace, name=self._addon_name)]
