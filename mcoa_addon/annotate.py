"""Stamping of the configuration hash on the delivery envelopes of an addon."""

import logging
from typing import Any

from .client import Client
from .manifest import (
    ANNOTATION_CONFIG_HASH,
    LABEL_ADDON_NAME,
    MANIFEST_WORK_KIND,
    NamedResource,
)
from .mutate import OperationResult, create_or_update
from .options import Options
from .values import ValuesBundle, canonical_dumps

__all__ = [
    "config_hash",
    "fnv1a_64",
    "update_annotation_on_manifest_works",
]

_LOGGER = logging.getLogger(__name__)

FNV_OFFSET_BASIS_64 = 0xCBF29CE484222325
FNV_PRIME_64 = 0x100000001B3
_MASK_64 = 0xFFFFFFFFFFFFFFFF


def fnv1a_64(data: bytes) -> int:
    """Return the 64-bit FNV-1a hash of the data."""
    value = FNV_OFFSET_BASIS_64
    for byte in data:
        value ^= byte
        value = (value * FNV_PRIME_64) & _MASK_64
    return value


def config_hash(options: Options, values: ValuesBundle | None = None) -> str:
    """Return the decimal content hash of the options and the composed values.

    The hash is computed over the canonical serialisation so it does not
    depend on insertion order and is stable across processes.
    """
    payload: dict[str, Any] = {"options": options.to_dict()}
    if values is not None:
        payload["values"] = values
    return str(fnv1a_64(canonical_dumps(payload).encode()))


async def update_annotation_on_manifest_works(
    client: Client, namespace: str, addon_name: str, hash_value: str
) -> int:
    """Set the config hash annotation on all envelopes of the addon in a namespace.

    Returns the number of envelopes updated. Envelopes already carrying the
    hash are not written.
    """
    docs = await client.list(
        MANIFEST_WORK_KIND, namespace=namespace, labels={LABEL_ADDON_NAME: addon_name}
    )
    if not docs:
        _LOGGER.info("Could not find a matching envelope in namespace %s", namespace)
        return 0

    updated = 0
    for doc in docs:
        result = await create_or_update(
            client, doc, extra_annotations={ANNOTATION_CONFIG_HASH: hash_value}
        )
        if result != OperationResult.UNCHANGED:
            _LOGGER.debug("Stamped config hash %s on %s", hash_value, NamedResource.from_doc(doc))
            updated += 1
    return updated
