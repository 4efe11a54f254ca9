"""Type directed mutation of API objects for the create-or-update idiom.

A mutate function converges an existing object on a desired object. The
metadata merge is shared by all kinds while the payload is converged by a
policy registered for each concrete kind. Kinds without a policy fail loudly
rather than being silently mishandled.
"""

from collections.abc import Callable
import copy
from enum import Enum
import logging
from typing import Any

from .client import Client
from .exceptions import ObjectNotFoundError, UnsupportedKindError
from .manifest import (
    CERTIFICATE_KIND,
    CLUSTER_ISSUER_KIND,
    CONFIG_MAP_KIND,
    ISSUER_KIND,
    MANIFEST_WORK_KIND,
    PROMETHEUS_AGENT_KIND,
    PROMETHEUS_RULE_KIND,
    SCRAPE_CONFIG_KIND,
    SECRET_KIND,
    NamedResource,
)

__all__ = [
    "OperationResult",
    "mutate_func_for",
    "create_or_update",
]

_LOGGER = logging.getLogger(__name__)

MutateFn = Callable[[], None]
"""Mutates an existing object in place."""

_Policy = Callable[[dict[str, Any], dict[str, Any]], None]


class OperationResult(str, Enum):
    """The outcome of a create-or-update call."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def _replace_fields(*fields: str) -> _Policy:
    """Return a policy overwriting top level fields wholesale."""

    def policy(existing: dict[str, Any], desired: dict[str, Any]) -> None:
        for name in fields:
            if name in desired:
                existing[name] = copy.deepcopy(desired[name])
            else:
                existing.pop(name, None)

    return policy


_SPEC_POLICY = _replace_fields("spec")

MUTATE_POLICIES: dict[str, _Policy] = {
    CERTIFICATE_KIND: _SPEC_POLICY,
    ISSUER_KIND: _SPEC_POLICY,
    CLUSTER_ISSUER_KIND: _SPEC_POLICY,
    MANIFEST_WORK_KIND: _SPEC_POLICY,
    PROMETHEUS_AGENT_KIND: _SPEC_POLICY,
    PROMETHEUS_RULE_KIND: _SPEC_POLICY,
    SCRAPE_CONFIG_KIND: _SPEC_POLICY,
    SECRET_KIND: _replace_fields("data", "type"),
    CONFIG_MAP_KIND: _replace_fields("data"),
}


def _policy_for(kind: str) -> _Policy:
    if (policy := MUTATE_POLICIES.get(kind)) is None:
        raise UnsupportedKindError(kind)
    return policy


def _merge(existing: dict[str, Any] | None, *overrides: dict[str, str] | None) -> dict[str, str]:
    merged = dict(existing or {})
    for override in overrides:
        merged.update(override or {})
    return merged


def mutate_func_for(
    existing: dict[str, Any],
    desired: dict[str, Any],
    extra_annotations: dict[str, str] | None = None,
) -> MutateFn:
    """Return a function that mutates existing in place to converge on desired.

    Annotations and labels are merged with desired values overriding existing
    ones and extra annotations overriding both. Owner references are replaced
    when the desired object sets any.
    """

    def mutate() -> None:
        policy = _policy_for(existing.get("kind", ""))
        metadata = existing.setdefault("metadata", {})
        want = desired.get("metadata", {})

        if annotations := _merge(
            metadata.get("annotations"), want.get("annotations"), extra_annotations
        ):
            metadata["annotations"] = annotations
        if labels := _merge(metadata.get("labels"), want.get("labels")):
            metadata["labels"] = labels
        if owner_references := want.get("ownerReferences"):
            metadata["ownerReferences"] = copy.deepcopy(owner_references)

        policy(existing, desired)

    return mutate


async def create_or_update(
    client: Client,
    desired: dict[str, Any],
    extra_annotations: dict[str, str] | None = None,
) -> OperationResult:
    """Create the desired object or converge the existing object on it.

    No write is issued when the mutation leaves the existing object unchanged.
    """
    resource_id = NamedResource.from_doc(desired)
    _policy_for(resource_id.kind)
    try:
        existing = await client.get(
            resource_id.kind, resource_id.namespace, resource_id.name
        )
    except ObjectNotFoundError:
        obj = copy.deepcopy(desired)
        if extra_annotations:
            metadata = obj.setdefault("metadata", {})
            metadata["annotations"] = _merge(metadata.get("annotations"), extra_annotations)
        await client.create(obj)
        _LOGGER.info("Created %s", resource_id)
        return OperationResult.CREATED

    before = copy.deepcopy(existing)
    mutate_func_for(existing, desired, extra_annotations)()
    if existing == before:
        _LOGGER.debug("%s is unchanged", resource_id)
        return OperationResult.UNCHANGED
    await client.update(existing)
    _LOGGER.info("Updated %s", resource_id)
    return OperationResult.UPDATED
