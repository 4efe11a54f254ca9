"""Reconciler converging the delivery envelope of an addon installation.

A reconcile of (cluster namespace, addon name) reads the addon, its
deployment config and the configuration objects it references, materialises
the credentials requested by the signal objects, composes and renders the
values, then writes the result into the envelope of the installation and
stamps the config hash on every envelope of the addon.

Configuration errors are reported on the addon status and are not retried.
Transient API errors propagate so the request is retried by the work queue.
"""

from collections.abc import Iterable
import datetime
import logging
from typing import Any

from mcoa_addon.annotate import config_hash, update_annotation_on_manifest_works
from mcoa_addon.authentication import (
    AuthConfig,
    AuthenticationType,
    MTLSConfig,
    SecretsProvider,
    Target,
    build_authentication_from_annotations,
)
from mcoa_addon.client import Client
from mcoa_addon.config import AddonConfig
from mcoa_addon.exceptions import (
    ConfigurationError,
    MissingPreconditionError,
    ObjectNotFoundError,
)
from mcoa_addon.manifest import (
    ADDON_DEPLOYMENT_CONFIG_KIND,
    ANNOTATION_CONFIG_HASH,
    LABEL_ADDON_NAME,
    MANAGED_CLUSTER_ADDON_KIND,
    MANAGED_CLUSTER_KIND,
    MANIFEST_WORK_KIND,
    AddOnDeploymentConfig,
    ConfigKey,
    ManagedCluster,
    ManagedClusterAddOn,
    ManifestWork,
    Secret,
    new_object,
)
from mcoa_addon.mutate import create_or_update
from mcoa_addon.options import build_options
from mcoa_addon.reference_cache import ReferenceCache, envelope_config_keys
from mcoa_addon.render import Renderer, ValuesRenderer, sort_manifests
from mcoa_addon.signals import SIGNALS, Signal
from mcoa_addon.values import compose_values

from .request import Request, Result

__all__ = [
    "AddonReconciler",
    "envelope_name",
]

_LOGGER = logging.getLogger(__name__)

CONDITION_CONFIGURATION_VALID = "ConfigurationValid"
REASON_VALID = "ConfigurationValid"
REASON_INVALID = "InvalidConfiguration"
REASON_MISSING_PRECONDITION = "MissingPrecondition"


def envelope_name(addon_name: str) -> str:
    """Return the name of the default envelope of an addon installation."""
    return f"addon-{addon_name}-deploy-0"


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class AddonReconciler:
    """Reconciles addon installations one request at a time."""

    def __init__(
        self,
        client: Client,
        cache: ReferenceCache,
        config: AddonConfig,
        renderer: Renderer | None = None,
        signals: Iterable[Signal] = SIGNALS,
    ) -> None:
        """Initialize AddonReconciler."""
        self._client = client
        self._cache = cache
        self._config = config
        self._renderer = renderer or ValuesRenderer()
        self._signals = tuple(signals)

    async def reconcile(self, request: Request) -> Result:
        """Converge the envelopes of the addon installation of a request."""
        try:
            addon_doc = await self._client.get(
                MANAGED_CLUSTER_ADDON_KIND, request.namespace, request.name
            )
        except ObjectNotFoundError:
            _LOGGER.debug("Addon %s not found, nothing to reconcile", request)
            return Result()

        try:
            addon = ManagedClusterAddOn.parse_doc(addon_doc)
            missing = await self._reconcile_addon(addon)
        except ConfigurationError as err:
            _LOGGER.error("Invalid configuration for addon %s: %s", request, err)
            await self._set_condition(addon_doc, False, REASON_INVALID, str(err))
            return Result()

        if missing:
            await self._set_condition(
                addon_doc, False, REASON_MISSING_PRECONDITION, "; ".join(missing)
            )
            return Result(requeue=True)
        await self._set_condition(
            addon_doc, True, REASON_VALID, "The addon configuration is valid"
        )
        return Result()

    async def _reconcile_addon(self, addon: ManagedClusterAddOn) -> list[str]:
        """Deliver the envelope of an addon, returning the missing preconditions."""
        try:
            cluster = ManagedCluster.parse_doc(
                await self._client.get(MANAGED_CLUSTER_KIND, None, addon.cluster_name)
            )
        except ObjectNotFoundError:
            _LOGGER.debug("Cluster %s not found, skipping addon", addon.cluster_name)
            return []

        options = build_options(await self._deployment_config(addon))
        references = await self._references(addon)

        credentials: dict[str, dict[Target, Secret]] = {}
        source_keys: set[ConfigKey] = set()
        missing: list[str] = []
        for signal in self._signals:
            if signal.disabled(options) or not signal.auth_kinds:
                continue
            try:
                secrets = await self._credentials(addon, signal, references, source_keys)
                if secrets is not None:
                    credentials[signal.name] = secrets
            except MissingPreconditionError as err:
                _LOGGER.warning(
                    "Skipping credentials of %s for cluster %s: %s",
                    signal.name,
                    cluster.name,
                    err,
                )
                missing.append(f"{signal.name}: {err}")

        values = compose_values(
            cluster,
            addon,
            options,
            credentials,
            is_hub=cluster.is_hub,
            references=references,
            signals=self._signals,
        )
        manifests = sort_manifests(self._renderer.render(values))
        hash_value = config_hash(options, values)
        await self._deliver(addon, manifests, hash_value)
        await update_annotation_on_manifest_works(
            self._client, addon.namespace, addon.name, hash_value
        )
        await self._update_cache(addon, source_keys)
        return missing

    async def _deployment_config(
        self, addon: ManagedClusterAddOn
    ) -> AddOnDeploymentConfig | None:
        keys = addon.references(ADDON_DEPLOYMENT_CONFIG_KIND)
        if len(keys) > 1:
            raise ConfigurationError(
                f"Addon {addon.namespace}/{addon.name} references {len(keys)} "
                "AddOnDeploymentConfigs, expected at most one"
            )
        if not keys:
            return None
        key = keys[0]
        try:
            doc = await self._client.get(key.kind, key.namespace or None, key.name)
        except ObjectNotFoundError:
            _LOGGER.debug("AddOnDeploymentConfig %s not found, using defaults", key)
            return None
        return AddOnDeploymentConfig.parse_doc(doc)

    async def _references(self, addon: ManagedClusterAddOn) -> dict[ConfigKey, dict[str, Any]]:
        references = {}
        for key in sorted(addon.config_keys()):
            if key.kind == ADDON_DEPLOYMENT_CONFIG_KIND:
                continue
            try:
                references[key] = await self._client.get(
                    key.kind, key.namespace or None, key.name
                )
            except ObjectNotFoundError:
                _LOGGER.debug("Referenced object %s not found, skipping", key)
        return references

    async def _credentials(
        self,
        addon: ManagedClusterAddOn,
        signal: Signal,
        references: dict[ConfigKey, dict[str, Any]],
        source_keys: set[ConfigKey],
    ) -> dict[Target, Secret] | None:
        target_auth: dict[Target, AuthenticationType] = {}
        for key, doc in sorted(references.items()):
            if key.kind in signal.auth_kinds:
                annotations = doc.get("metadata", {}).get("annotations") or {}
                target_auth.update(build_authentication_from_annotations(annotations))
        if not target_auth:
            return None
        owner = addon.owner_reference()
        auth_config = AuthConfig(
            owner_labels={LABEL_ADDON_NAME: addon.name},
            owner_references=(owner,) if owner else (),
            mtls=MTLSConfig(
                common_name=signal.common_name,
                dns_names=(signal.common_name,),
                organizations=(addon.cluster_name,),
                cluster_issuer_name=self._config.cluster_issuer_name,
                ca_to_inject=self._config.ca_to_inject,
            ),
            default_namespace=self._config.default_namespace,
        )
        provider = SecretsProvider(self._client, addon.cluster_name, signal.name, auth_config)
        try:
            handles = await provider.generate_secrets(target_auth)
        finally:
            source_keys.update(provider.source_keys)
        return await provider.fetch_secrets(handles)

    async def _deliver(
        self, addon: ManagedClusterAddOn, manifests: list[dict[str, Any]], hash_value: str
    ) -> None:
        envelope = new_object(
            MANIFEST_WORK_KIND,
            envelope_name(addon.name),
            addon.namespace,
            labels={LABEL_ADDON_NAME: addon.name},
            spec={"workload": {"manifests": manifests}},
        )
        result = await create_or_update(
            self._client, envelope, extra_annotations={ANNOTATION_CONFIG_HASH: hash_value}
        )
        _LOGGER.debug(
            "Envelope of addon %s/%s %s with %d manifests",
            addon.namespace,
            addon.name,
            result.value,
            len(manifests),
        )

    async def _update_cache(
        self, addon: ManagedClusterAddOn, source_keys: set[ConfigKey]
    ) -> None:
        """Index the envelopes of the addon, with the static credential sources."""
        docs = await self._client.list(
            MANIFEST_WORK_KIND,
            namespace=addon.namespace,
            labels={LABEL_ADDON_NAME: addon.name},
        )
        for doc in docs:
            envelope = ManifestWork.parse_doc(doc)
            keys = envelope_config_keys(envelope, addon)
            if envelope.name == envelope_name(addon.name):
                keys |= source_keys
            self._cache.put(envelope.namespace, envelope.name, keys)

    async def _set_condition(
        self, addon_doc: dict[str, Any], valid: bool, reason: str, message: str
    ) -> None:
        """Record the validity of the configuration, writing only on change."""
        status = "True" if valid else "False"
        conditions = list((addon_doc.get("status") or {}).get("conditions") or [])
        existing = next(
            (c for c in conditions if c.get("type") == CONDITION_CONFIGURATION_VALID), None
        )
        if existing is not None and (
            existing.get("status"),
            existing.get("reason"),
            existing.get("message"),
        ) == (status, reason, message):
            return
        transition_time = _now()
        if existing is not None and existing.get("status") == status:
            transition_time = existing.get("lastTransitionTime", transition_time)
        condition = {
            "type": CONDITION_CONFIGURATION_VALID,
            "status": status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": transition_time,
        }
        doc = dict(addon_doc)
        doc["status"] = {
            **(addon_doc.get("status") or {}),
            "conditions": [
                c for c in conditions if c.get("type") != CONDITION_CONFIGURATION_VALID
            ]
            + [condition],
        }
        await self._client.update_status(doc)
        _LOGGER.info(
            "Set condition %s=%s (%s) on addon %s/%s",
            CONDITION_CONFIGURATION_VALID,
            status,
            reason,
            addon_doc["metadata"].get("namespace"),
            addon_doc["metadata"]["name"],
        )
