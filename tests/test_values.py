"""Tests for the value composer."""

import json
from typing import Any

import pytest

from mcoa_addon.exceptions import ConfigurationError
from mcoa_addon.manifest import (
    ANNOTATION_TARGET_OUTPUT_NAME,
    ConfigKey,
    ManagedCluster,
    ManagedClusterAddOn,
    Secret,
    new_object,
)
from mcoa_addon.options import (
    LogsOptions,
    MetricsOptions,
    Options,
    PlatformOptions,
    ProxyOptions,
    Toleration,
    TracesOptions,
    UserWorkloadOptions,
)
from mcoa_addon.values import canonical_dumps, compose_values

HUB_NAMESPACE = "open-cluster-management-observability"


@pytest.fixture(name="cluster")
def cluster_fixture() -> ManagedCluster:
    return ManagedCluster(name="spoke-1", labels={"clusterID": "1234"})


@pytest.fixture(name="hub")
def hub_fixture() -> ManagedCluster:
    return ManagedCluster(name="local-cluster", labels={"local-cluster": "true"})


@pytest.fixture(name="addon")
def addon_fixture() -> ManagedClusterAddOn:
    return ManagedClusterAddOn(name="multicluster-observability-addon", namespace="spoke-1")


def _reference(kind: str, name: str, **body: Any) -> tuple[ConfigKey, dict[str, Any]]:
    doc = new_object(kind, name, HUB_NAMESPACE, **body)
    return ConfigKey.from_doc(doc), doc


ALL_ENABLED = Options(
    platform=PlatformOptions(
        metrics=MetricsOptions(collection_enabled=True),
        logs=LogsOptions(collection_enabled=True),
        incident_detection=True,
    ),
    user_workloads=UserWorkloadOptions(
        metrics=MetricsOptions(collection_enabled=True),
        logs=LogsOptions(collection_enabled=True),
        traces=TracesOptions(collection_enabled=True, instrumentation_enabled=True),
    ),
    metrics_ui_enabled=True,
    hub_endpoint="https://hub.example.com",
)


def test_disabled_signals_omitted(cluster: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test disabled signals have no section at all."""
    options = Options(
        metrics_disabled=True,
        logging_disabled=True,
        tracing_disabled=True,
        platform=ALL_ENABLED.platform,
        user_workloads=ALL_ENABLED.user_workloads,
        hub_endpoint=ALL_ENABLED.hub_endpoint,
    )
    values = compose_values(cluster, addon, options)
    assert "metrics" not in values
    assert "logging" not in values
    assert "tracing" not in values
    # Incident detection is not gated by the signal flags
    assert values["ui"]["incidentDetection"] == {"enabled": True}
    assert values["ui"]["metrics"] == {"enabled": False}


def test_nothing_enabled(cluster: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test only the global section is composed by default."""
    values = compose_values(cluster, addon, Options())
    assert values == {
        "global": {
            "addonName": "multicluster-observability-addon",
            "clusterID": "1234",
            "clusterName": "spoke-1",
            "hubCluster": False,
        }
    }


def test_global_placement(cluster: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test placement and proxy settings in the global section."""
    options = Options(
        install_namespace="agents",
        node_selector=(("kubernetes.io/os", "linux"),),
        tolerations=(Toleration(key="infra", operator="Exists"),),
        proxy=ProxyOptions(https_proxy="https://proxy:3128"),
    )
    values = compose_values(cluster, addon, options)
    assert values["global"]["installNamespace"] == "agents"
    assert values["global"]["nodeSelector"] == {"kubernetes.io/os": "linux"}
    assert values["global"]["tolerations"] == [{"key": "infra", "operator": "Exists"}]
    assert values["global"]["proxy"] == {"httpsProxy": "https://proxy:3128"}


def test_all_signals(cluster: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test the sections composed from the referenced objects."""
    references = dict(
        [
            _reference(
                "PrometheusAgent",
                "platform",
                spec={"scrapeInterval": "30s"},
            ),
            _reference("ScrapeConfig", "kubelet", spec={"jobName": "kubelet"}),
            _reference("ClusterLogForwarder", "instance", spec={"outputs": []}),
            _reference("ConfigMap", "logging-settings", data={"a": "b"}),
            _reference("ConfigMap", "otlp-settings", data={"endpoint": "otlp"}),
            _reference("OpenTelemetryCollector", "instance", spec={"mode": "deployment"}),
            _reference("Instrumentation", "instance", spec={"exporter": {}}),
        ]
    )
    key, doc = _reference("ConfigMap", "otlp-target")
    doc["metadata"]["annotations"] = {ANNOTATION_TARGET_OUTPUT_NAME: "otlp"}
    doc["data"] = {"endpoint": "otlp"}
    references[key] = doc
    credentials = {
        "logging": {
            "cloudwatch": Secret(
                name="logging-cloudwatch-auth",
                namespace="spoke-1",
                data={"token": "dG9rZW4="},
            )
        }
    }

    values = compose_values(
        cluster, addon, ALL_ENABLED, credentials, references=references
    )

    metrics = values["metrics"]
    assert metrics["hubEndpoint"] == "https://hub.example.com"
    assert metrics["clusterID"] == "1234"
    assert metrics["platform"] == {
        "enabled": True,
        "agent": {
            "name": "platform",
            "namespace": HUB_NAMESPACE,
            "spec": {"scrapeInterval": "30s"},
        },
    }
    assert metrics["userWorkloads"] == {"enabled": True}
    assert [c["name"] for c in metrics["scrapeConfigs"]] == ["kubelet"]

    logging_values = values["logging"]
    assert logging_values["subscriptionChannel"] == "stable-6.2"
    assert logging_values["clfs"][0]["spec"]["serviceAccount"] == {"name": "mcoa-logcollector"}
    assert [c["name"] for c in logging_values["configMaps"]] == [
        "logging-settings",
        "otlp-settings",
    ]
    assert logging_values["secrets"] == [
        {
            "data": {"token": "dG9rZW4="},
            "name": "logging-cloudwatch-auth",
            "namespace": "spoke-1",
            "target": "cloudwatch",
        }
    ]

    tracing = values["tracing"]
    assert [c["name"] for c in tracing["otelCols"]] == ["instance"]
    assert [c["name"] for c in tracing["instrumentations"]] == ["instance"]
    assert tracing["configMaps"] == [
        {
            "data": {"endpoint": "otlp"},
            "name": "otlp-target",
            "namespace": HUB_NAMESPACE,
            "target": "otlp",
        }
    ]

    ui = values["ui"]
    assert ui["installOperator"] is True
    assert "dashboards" not in ui


def test_metrics_require_hub_endpoint(
    cluster: ManagedCluster, addon: ManagedClusterAddOn
) -> None:
    """Test metrics collection without a hub endpoint is a configuration error."""
    options = Options(
        platform=PlatformOptions(metrics=MetricsOptions(collection_enabled=True))
    )
    with pytest.raises(ConfigurationError, match="platformSignalsHubEndpoint"):
        compose_values(cluster, addon, options)


def test_hub_branch(hub: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test the hub gets the dashboards and no tracing."""
    values = compose_values(hub, addon, ALL_ENABLED, is_hub=True)
    assert values["global"]["hubCluster"] is True
    assert "tracing" not in values
    assert values["ui"]["installOperator"] is False
    assert values["ui"]["dashboards"][0] == "acm-incidents-overview"


def test_deterministic(cluster: ManagedCluster, addon: ManagedClusterAddOn) -> None:
    """Test the serialisation does not depend on input ordering."""
    first = dict([_reference("ScrapeConfig", "a", spec={"x": 1, "y": 2})])
    second_key, second_doc = _reference("ScrapeConfig", "a", spec={"y": 2, "x": 1})
    values_a = compose_values(cluster, addon, ALL_ENABLED, references=first)
    values_b = compose_values(
        cluster, addon, ALL_ENABLED, references={second_key: second_doc}
    )
    assert canonical_dumps(values_a) == canonical_dumps(values_b)
    assert json.dumps(values_a) == json.dumps(values_b)
    assert list(values_a) == sorted(values_a)
