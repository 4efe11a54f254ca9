"""Bi-directional index between delivery envelopes and configuration objects.

The cache maps each ConfigKey to the namespaces of the envelopes that embed
or reference it, and each envelope to the keys it references. It is the only
place where the edge from a configuration object back to an envelope is
materialised and it can always be rebuilt from the envelopes on the API.
"""

from collections import Counter
from collections.abc import Iterable, Iterator
import contextlib
import logging
import threading
from typing import Any

from .client import Client
from .manifest import (
    CONFIG_MAP_KIND,
    LABEL_ADDON_NAME,
    MANAGED_CLUSTER_ADDON_KIND,
    MANIFEST_WORK_KIND,
    SECRET_KIND,
    ConfigKey,
    EnvelopeKey,
    ManagedClusterAddOn,
    ManifestWork,
    source_key,
)
from .exceptions import ObjectNotFoundError

__all__ = [
    "ReferenceCache",
    "envelope_config_keys",
    "rebuild_reference_cache",
]

_LOGGER = logging.getLogger(__name__)

# Embedded manifests of these kinds are tracked as references of the envelope
EMBEDDED_REFERENCE_KINDS = {SECRET_KIND, CONFIG_MAP_KIND}


class _ReadWriteLock:
    """A lock allowing concurrent readers and a single exclusive writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ReferenceCache:
    """Index of envelope to ConfigKey references and its inverse.

    Writers are serialised and exclusive with readers. Readers may run
    concurrently with each other. No method performs I/O.
    """

    def __init__(self) -> None:
        """Initialize ReferenceCache."""
        self._lock = _ReadWriteLock()
        self._forward: dict[ConfigKey, Counter[str]] = {}
        """Number of envelopes referencing each key, per namespace."""
        self._reverse: dict[EnvelopeKey, set[ConfigKey]] = {}

    def put(self, namespace: str, name: str, keys: Iterable[ConfigKey]) -> None:
        """Replace the reference set of an envelope."""
        envelope = EnvelopeKey(namespace=namespace, name=name)
        new_keys = set(keys)
        with self._lock.write():
            old_keys = self._reverse.get(envelope, set())
            if old_keys == new_keys:
                return
            removed = old_keys - new_keys
            added = new_keys - old_keys
            _LOGGER.debug(
                "Updating references of envelope %s (+%d -%d)",
                envelope,
                len(added),
                len(removed),
            )
            if new_keys:
                self._reverse[envelope] = new_keys
            else:
                self._reverse.pop(envelope, None)
            for key in removed:
                self._unlink(key, envelope)
            for key in added:
                self._forward.setdefault(key, Counter())[namespace] += 1

    def delete(self, namespace: str, name: str) -> None:
        """Remove all references owned by an envelope."""
        envelope = EnvelopeKey(namespace=namespace, name=name)
        with self._lock.write():
            if (old_keys := self._reverse.pop(envelope, None)) is None:
                return
            _LOGGER.debug("Removing %d references of envelope %s", len(old_keys), envelope)
            for key in old_keys:
                self._unlink(key, envelope)

    def namespaces(self, key: ConfigKey) -> list[str]:
        """Return the namespaces of the envelopes currently referencing a key."""
        with self._lock.read():
            return sorted(self._forward.get(key, ()))

    def keys(self) -> list[ConfigKey]:
        """Return all keys with at least one referencing envelope."""
        with self._lock.read():
            return sorted(self._forward)

    def references(self, namespace: str, name: str) -> set[ConfigKey]:
        """Return the keys currently referenced by an envelope."""
        with self._lock.read():
            return set(self._reverse.get(EnvelopeKey(namespace=namespace, name=name), ()))

    def _unlink(self, key: ConfigKey, envelope: EnvelopeKey) -> None:
        """Release the reference of an envelope on the forward entry of key.

        The namespace is retained while another envelope in it still
        references the key. Must hold the write lock.
        """
        if (namespaces := self._forward.get(key)) is None:
            return
        namespaces[envelope.namespace] -= 1
        if namespaces[envelope.namespace] <= 0:
            del namespaces[envelope.namespace]
        if not namespaces:
            del self._forward[key]


def envelope_config_keys(
    envelope: ManifestWork, addon: ManagedClusterAddOn | None = None
) -> set[ConfigKey]:
    """Return the configuration keys referenced by an envelope.

    These are the config references from the status of the addon that owns
    the envelope together with the identities of the Secrets and ConfigMaps
    embedded in the envelope, by the identity of the object they were copied
    from.
    """
    keys: set[ConfigKey] = set()
    if addon is not None:
        keys.update(addon.config_keys())
    for manifest in envelope.manifests:
        if manifest.get("kind") in EMBEDDED_REFERENCE_KINDS:
            keys.add(source_key(manifest))
    return keys


async def rebuild_reference_cache(
    client: Client, cache: ReferenceCache, addon_name: str
) -> int:
    """Populate the cache from all envelopes labelled with the addon name.

    Returns the number of envelopes indexed.
    """
    docs = await client.list(MANIFEST_WORK_KIND, labels={LABEL_ADDON_NAME: addon_name})
    addons: dict[str, ManagedClusterAddOn | None] = {}
    for doc in docs:
        envelope = ManifestWork.parse_doc(doc)
        if envelope.namespace not in addons:
            addons[envelope.namespace] = await _get_addon(
                client, envelope.namespace, addon_name
            )
        cache.put(
            envelope.namespace,
            envelope.name,
            envelope_config_keys(envelope, addons[envelope.namespace]),
        )
    _LOGGER.info("Rebuilt reference cache from %d envelopes", len(docs))
    return len(docs)


async def _get_addon(
    client: Client, namespace: str, name: str
) -> ManagedClusterAddOn | None:
    try:
        doc: dict[str, Any] = await client.get(MANAGED_CLUSTER_ADDON_KIND, namespace, name)
    except ObjectNotFoundError:
        _LOGGER.debug("No addon %s in namespace %s", name, namespace)
        return None
    return ManagedClusterAddOn.parse_doc(doc)
