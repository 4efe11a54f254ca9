"""Composition of the values bundle handed to the renderer.

The composer is a pure function of its inputs. Sections of disabled signals
are omitted entirely, keys are ordered at every level and lists keep their
input order, so that equal inputs always serialise to identical bytes.
"""

from collections.abc import Iterable, Mapping
import json
import logging
from typing import Any

from .manifest import ConfigKey, ManagedCluster, ManagedClusterAddOn, Secret
from .options import Options
from .signals import SIGNALS, Signal, SignalContext

__all__ = [
    "ValuesBundle",
    "compose_values",
    "canonical_dumps",
]

_LOGGER = logging.getLogger(__name__)

ValuesBundle = dict[str, Any]

GLOBAL_SECTION = "global"


def _normalize(value: Any) -> Any:
    """Return a copy of the value with mappings ordered by key."""
    if isinstance(value, Mapping):
        return {str(key): _normalize(value[key]) for key in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    return value


def _global_values(
    cluster: ManagedCluster, addon: ManagedClusterAddOn, options: Options, is_hub: bool
) -> dict[str, Any]:
    values: dict[str, Any] = {
        "clusterName": cluster.name,
        "clusterID": cluster.cluster_id,
        "addonName": addon.name,
        "hubCluster": is_hub,
    }
    if install_namespace := options.install_namespace or addon.install_namespace:
        values["installNamespace"] = install_namespace
    if options.node_selector:
        values["nodeSelector"] = dict(options.node_selector)
    if options.tolerations:
        values["tolerations"] = [
            {
                key: value
                for key, value in (
                    ("key", toleration.key),
                    ("operator", toleration.operator),
                    ("value", toleration.value),
                    ("effect", toleration.effect),
                    ("tolerationSeconds", toleration.toleration_seconds),
                )
                if value is not None
            }
            for toleration in options.tolerations
        ]
    proxy = {
        "httpProxy": options.proxy.http_proxy,
        "httpsProxy": options.proxy.https_proxy,
        "noProxy": options.proxy.no_proxy,
    }
    if proxy := {key: value for key, value in proxy.items() if value}:
        values["proxy"] = proxy
    return values


def compose_values(
    cluster: ManagedCluster,
    addon: ManagedClusterAddOn,
    options: Options,
    credentials: Mapping[str, Mapping[str, Secret]] | None = None,
    *,
    is_hub: bool = False,
    references: Mapping[ConfigKey, dict[str, Any]] | None = None,
    signals: Iterable[Signal] = SIGNALS,
) -> ValuesBundle:
    """Compose the values bundle of an addon installation on a cluster.

    Each signal section is gated by its disabled flag and omitted when the
    signal composer has nothing to deploy.
    """
    ctx = SignalContext(
        cluster=cluster,
        addon=addon,
        options=options,
        is_hub=is_hub,
        credentials={
            signal: dict(targets) for signal, targets in (credentials or {}).items()
        },
        references=dict(references or {}),
    )
    values: dict[str, Any] = {GLOBAL_SECTION: _global_values(cluster, addon, options, is_hub)}
    for signal in signals:
        if signal.disabled(options):
            _LOGGER.debug("Signal %s disabled for cluster %s", signal.name, cluster.name)
            continue
        if (section := signal.compose(ctx)) is not None:
            values[signal.name] = section
    return _normalize(values)


def canonical_dumps(values: Any) -> str:
    """Return the canonical serialisation of values used for hashing."""
    return json.dumps(values, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
