"""Rendering of a values bundle into the manifests delivered to a cluster."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
import logging
from typing import Any

from .manifest import (
    ANNOTATION_SOURCE,
    ANNOTATION_TARGET_OUTPUT_NAME,
    CLUSTER_LOG_FORWARDER_KIND,
    CONFIG_MAP_KIND,
    INSTALL_NAMESPACE,
    INSTRUMENTATION_KIND,
    NAMESPACE_KIND,
    OPENTELEMETRY_COLLECTOR_KIND,
    OPERATOR_GROUP_KIND,
    PROMETHEUS_AGENT_KIND,
    PROMETHEUS_RULE_KIND,
    SCRAPE_CONFIG_KIND,
    SECRET_KIND,
    SUBSCRIPTION_KIND,
    UI_PLUGIN_KIND,
    new_object,
)
from .values import GLOBAL_SECTION, ValuesBundle

__all__ = [
    "Renderer",
    "ValuesRenderer",
    "sort_manifests",
]

_LOGGER = logging.getLogger(__name__)

OPERATOR_GROUP_NAME = "mcoa-operator-group"
OPERATORS_NAMESPACE = "openshift-operators"
LOGGING_NAMESPACE = "openshift-logging"
OPERATOR_SOURCE = "redhat-operators"
OPERATOR_SOURCE_NAMESPACE = "openshift-marketplace"


class Renderer(ABC):
    """Turns a values bundle into the manifests of the envelope."""

    @abstractmethod
    def render(self, values: ValuesBundle) -> list[dict[str, Any]]:
        """Render the manifests of a values bundle."""


def sort_manifests(manifests: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort manifests lexicographically by kind, namespace and name."""

    def key(manifest: dict[str, Any]) -> tuple[str, str, str]:
        metadata = manifest.get("metadata", {})
        return (
            manifest.get("kind", ""),
            metadata.get("namespace") or "",
            metadata.get("name", ""),
        )

    return sorted(manifests, key=key)


def _subscription(name: str, namespace: str, channel: str) -> dict[str, Any]:
    return new_object(
        SUBSCRIPTION_KIND,
        name,
        namespace,
        spec={
            "channel": channel,
            "installPlanApproval": "Automatic",
            "name": name,
            "source": OPERATOR_SOURCE,
            "sourceNamespace": OPERATOR_SOURCE_NAMESPACE,
        },
    )


def _copy(
    kind: str,
    value: dict[str, Any],
    namespace: str,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build the copy of a Secret or ConfigMap recording the object it came from."""
    return new_object(
        kind,
        value["name"],
        namespace,
        annotations={
            ANNOTATION_SOURCE: f"{value['namespace']}/{value['name']}",
            **(annotations or {}),
        },
        data=dict(value.get("data") or {}),
    )


def _custom_resource(kind: str, value: dict[str, Any], namespace: str) -> dict[str, Any]:
    return new_object(kind, value["name"], namespace, spec=value["spec"])


def _secrets(section: dict[str, Any], namespace: str) -> list[dict[str, Any]]:
    return [
        _copy(
            SECRET_KIND,
            secret,
            namespace,
            {ANNOTATION_TARGET_OUTPUT_NAME: secret["target"]},
        )
        for secret in section.get("secrets", [])
    ]


class ValuesRenderer(Renderer):
    """Renders the sections of a values bundle into manifests.

    The namespace and operator group of the addon are always rendered. Each
    signal section adds the objects of its pipeline.
    """

    def render(self, values: ValuesBundle) -> list[dict[str, Any]]:
        """Render the manifests of a values bundle."""
        common = values.get(GLOBAL_SECTION, {})
        namespace = common.get("installNamespace") or INSTALL_NAMESPACE
        manifests = [
            new_object(NAMESPACE_KIND, namespace),
            new_object(
                OPERATOR_GROUP_KIND,
                OPERATOR_GROUP_NAME,
                namespace,
                spec={"upgradeStrategy": "Default"},
            ),
        ]
        if metrics := values.get("metrics"):
            manifests.extend(self._metrics(metrics, namespace))
        if logging_values := values.get("logging"):
            manifests.extend(self._logging(logging_values))
        if tracing := values.get("tracing"):
            manifests.extend(self._tracing(tracing, namespace))
        if ui := values.get("ui"):
            manifests.extend(self._ui(ui, namespace))
        _LOGGER.debug(
            "Rendered %d manifests for cluster %s",
            len(manifests),
            common.get("clusterName"),
        )
        return manifests

    def _metrics(self, metrics: dict[str, Any], namespace: str) -> list[dict[str, Any]]:
        manifests = []
        for scope in ("platform", "userWorkloads"):
            if agent := metrics[scope].get("agent"):
                obj = _custom_resource(PROMETHEUS_AGENT_KIND, agent, namespace)
                obj["spec"] = {
                    **obj["spec"],
                    "remoteWrite": [{"url": metrics["hubEndpoint"]}],
                }
                manifests.append(obj)
        manifests.extend(
            _custom_resource(SCRAPE_CONFIG_KIND, value, namespace)
            for value in metrics.get("scrapeConfigs", [])
        )
        manifests.extend(
            _custom_resource(PROMETHEUS_RULE_KIND, value, namespace)
            for value in metrics.get("rules", [])
        )
        manifests.extend(_secrets(metrics, namespace))
        return manifests

    def _logging(self, logging_values: dict[str, Any]) -> list[dict[str, Any]]:
        manifests = [
            new_object(NAMESPACE_KIND, LOGGING_NAMESPACE),
            _subscription(
                "cluster-logging", LOGGING_NAMESPACE, logging_values["subscriptionChannel"]
            ),
        ]
        manifests.extend(
            _custom_resource(CLUSTER_LOG_FORWARDER_KIND, value, LOGGING_NAMESPACE)
            for value in logging_values.get("clfs", [])
        )
        manifests.extend(
            _copy(CONFIG_MAP_KIND, value, LOGGING_NAMESPACE)
            for value in logging_values.get("configMaps", [])
        )
        manifests.extend(_secrets(logging_values, LOGGING_NAMESPACE))
        return manifests

    def _tracing(self, tracing: dict[str, Any], namespace: str) -> list[dict[str, Any]]:
        manifests = [_subscription("opentelemetry-product", OPERATORS_NAMESPACE, "stable")]
        manifests.extend(
            _custom_resource(OPENTELEMETRY_COLLECTOR_KIND, value, namespace)
            for value in tracing.get("otelCols", [])
        )
        manifests.extend(
            _custom_resource(INSTRUMENTATION_KIND, value, namespace)
            for value in tracing.get("instrumentations", [])
        )
        manifests.extend(
            _copy(
                CONFIG_MAP_KIND,
                value,
                namespace,
                {ANNOTATION_TARGET_OUTPUT_NAME: value["target"]},
            )
            for value in tracing.get("configMaps", [])
        )
        manifests.extend(_secrets(tracing, namespace))
        return manifests

    def _ui(self, ui: dict[str, Any], namespace: str) -> list[dict[str, Any]]:
        manifests = []
        if ui["installOperator"]:
            manifests.append(
                _subscription("cluster-observability-operator", OPERATORS_NAMESPACE, "stable")
            )
        if ui["incidentDetection"]["enabled"]:
            manifests.append(
                new_object(
                    UI_PLUGIN_KIND,
                    "monitoring",
                    spec={
                        "type": "Monitoring",
                        "monitoring": {"incidents": {"enabled": True}},
                    },
                )
            )
        manifests.extend(
            new_object(
                CONFIG_MAP_KIND,
                f"dashboard-{name}",
                namespace,
                labels={"console.openshift.io/dashboard": "true"},
                data={"dashboard": name},
            )
            for name in ui.get("dashboards", [])
        )
        return manifests
