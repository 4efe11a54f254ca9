"""Tests for the addon manager."""

from collections.abc import AsyncGenerator
from typing import Any

import pytest

from mcoa_addon.client import InMemoryClient
from mcoa_addon.config import AddonConfig
from mcoa_addon.manager import AddonManager
from mcoa_addon.manifest import (
    ANNOTATION_CONFIG_HASH,
    ANNOTATION_SOURCE,
    LABEL_ADDON_NAME,
    ConfigKey,
    new_object,
)

ADDON = "multicluster-observability-addon"
HUB_NAMESPACE = "open-cluster-management-observability"
ENVELOPE = f"addon-{ADDON}-deploy-0"


def _addon(namespace: str) -> dict[str, Any]:
    obj = new_object(
        "ManagedClusterAddOn", ADDON, namespace, labels={LABEL_ADDON_NAME: ADDON}
    )
    obj["status"] = {
        "configReferences": [
            {
                "group": "addon.open-cluster-management.io",
                "resource": "addondeploymentconfigs",
                "name": "config",
                "namespace": HUB_NAMESPACE,
            },
            {
                "group": "",
                "resource": "configmaps",
                "name": "logging-settings",
                "namespace": HUB_NAMESPACE,
            },
        ]
    }
    return obj


def _settings(value: str) -> dict[str, Any]:
    return new_object("ConfigMap", "logging-settings", HUB_NAMESPACE, data={"level": value})


@pytest.fixture(name="client")
def client_fixture() -> InMemoryClient:
    return InMemoryClient(
        [
            new_object("ManagedCluster", "spoke-1"),
            new_object("ManagedCluster", "spoke-2"),
            _addon("spoke-1"),
            _addon("spoke-2"),
            new_object(
                "AddOnDeploymentConfig",
                "config",
                HUB_NAMESPACE,
                spec={
                    "customizedVariables": [
                        {
                            "name": "platformLogsCollection",
                            "value": "clusterlogforwarders.v1.observability.openshift.io",
                        }
                    ]
                },
            ),
            _settings("info"),
        ]
    )


@pytest.fixture(name="manager")
async def manager_fixture(client: InMemoryClient) -> AsyncGenerator[AddonManager, None]:
    manager = AddonManager(client, AddonConfig(workers=2, requeue_delay=0.01))
    await manager.start()
    await manager.block_till_done()
    yield manager
    await manager.stop()


def _embedded_settings(envelope: dict[str, Any]) -> dict[str, Any]:
    (config_map,) = [
        m
        for m in envelope["spec"]["workload"]["manifests"]
        if m["kind"] == "ConfigMap"
        and m["metadata"]["annotations"][ANNOTATION_SOURCE] == f"{HUB_NAMESPACE}/logging-settings"
    ]
    return config_map


async def test_initial_reconcile(manager: AddonManager, client: InMemoryClient) -> None:
    """Test every installation is reconciled on start."""
    for namespace in ("spoke-1", "spoke-2"):
        envelope = await client.get("ManifestWork", namespace, ENVELOPE)
        assert ANNOTATION_CONFIG_HASH in envelope["metadata"]["annotations"]
        assert _embedded_settings(envelope)["data"] == {"level": "info"}

    key = ConfigKey("", "ConfigMap", HUB_NAMESPACE, "logging-settings")
    assert manager.cache.namespaces(key) == ["spoke-1", "spoke-2"]


async def test_settled(manager: AddonManager, client: InMemoryClient) -> None:
    """Test the manager does not write once it settled."""
    writes = dict(client.writes)
    await manager.enqueue_all()
    await manager.block_till_done()
    assert client.writes == writes


async def test_referenced_object_change(manager: AddonManager, client: InMemoryClient) -> None:
    """Test a change to a referenced object is delivered to every envelope."""
    client.add_object(_settings("debug"))
    await manager.block_till_done()

    for namespace in ("spoke-1", "spoke-2"):
        envelope = await client.get("ManifestWork", namespace, ENVELOPE)
        assert _embedded_settings(envelope)["data"] == {"level": "debug"}


async def test_envelope_deleted(manager: AddonManager, client: InMemoryClient) -> None:
    """Test a deleted envelope is removed from the reference cache."""
    await client.delete("ManifestWork", "spoke-2", ENVELOPE)
    await manager.block_till_done()

    key = ConfigKey("", "ConfigMap", HUB_NAMESPACE, "logging-settings")
    assert manager.cache.namespaces(key) == ["spoke-1"]


async def test_restart_rebuilds_cache(client: InMemoryClient) -> None:
    """Test a new manager indexes the existing envelopes before reconciling."""
    first = AddonManager(client)
    await first.start()
    await first.block_till_done()
    await first.stop()

    writes = dict(client.writes)
    second = AddonManager(client)
    await second.start()
    key = ConfigKey("", "ConfigMap", HUB_NAMESPACE, "logging-settings")
    assert second.cache.namespaces(key) == ["spoke-1", "spoke-2"]
    await second.block_till_done()
    await second.stop()
    assert client.writes == writes


def _static_source(password: str) -> dict[str, Any]:
    return new_object(
        "Secret", "static-target", HUB_NAMESPACE, data={"password": password}
    )


async def test_static_credentials_rotation() -> None:
    """Test rotating the source of static credentials updates every copy."""
    addon = _addon("spoke-1")
    addon["status"]["configReferences"].append(
        {
            "group": "observability.openshift.io",
            "resource": "clusterlogforwarders",
            "name": "instance",
            "namespace": HUB_NAMESPACE,
        }
    )
    client = InMemoryClient(
        [
            new_object("ManagedCluster", "spoke-1"),
            addon,
            new_object(
                "AddOnDeploymentConfig",
                "config",
                HUB_NAMESPACE,
                spec={
                    "customizedVariables": [
                        {
                            "name": "platformLogsCollection",
                            "value": "clusterlogforwarders.v1.observability.openshift.io",
                        }
                    ]
                },
            ),
            new_object(
                "ClusterLogForwarder",
                "instance",
                HUB_NAMESPACE,
                annotations={"authentication.mcoa.openshift.io/static-target": "Static"},
                spec={"outputs": [{"name": "static-target", "type": "loki"}]},
            ),
            _settings("info"),
            _static_source("b2xk"),
        ]
    )
    manager = AddonManager(client, AddonConfig(workers=2, requeue_delay=0.01))
    await manager.start()
    try:
        await manager.block_till_done()
        key = ConfigKey("", "Secret", HUB_NAMESPACE, "static-target")
        assert manager.cache.namespaces(key) == ["spoke-1"]

        client.add_object(_static_source("bmV3"))
        await manager.block_till_done()
    finally:
        await manager.stop()

    copy = await client.get("Secret", "spoke-1", "logging-static-target-auth")
    assert copy["data"] == {"password": "bmV3"}
    envelope = await client.get("ManifestWork", "spoke-1", ENVELOPE)
    (embedded,) = [
        m for m in envelope["spec"]["workload"]["manifests"] if m["kind"] == "Secret"
    ]
    assert embedded["data"] == {"password": "bmV3"}
