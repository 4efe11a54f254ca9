"""Tests for the mcoa-addon command line tool."""

from pathlib import Path
import sys

import pytest
import yaml

from mcoa_addon.tool.mcoa_addon import main
from mcoa_addon.tool.reconcile import ReconcileAction, load_objects

TESTDATA = Path("tests/testdata")
ENVELOPE = "addon-multicluster-observability-addon-deploy-0"


async def test_load_objects() -> None:
    """Test loading the objects of a directory of YAML files."""
    objects = await load_objects(TESTDATA / "hub")
    assert [obj["kind"] for obj in objects] == [
        "ManagedClusterAddOn",
        "ManagedClusterAddOn",
        "ManagedCluster",
        "ManagedCluster",
        "AddOnDeploymentConfig",
        "ClusterLogForwarder",
        "ConfigMap",
        "Secret",
    ]


async def test_reconcile_action(tmp_path: Path) -> None:
    """Test the envelopes printed by the reconcile action."""
    output = tmp_path / "output.yaml"
    await ReconcileAction().run(
        path=TESTDATA / "hub",
        config=TESTDATA / "addon-config.yaml",
        output_file=str(output),
    )
    works = list(yaml.safe_load_all(output.read_text()))
    assert [(w["metadata"]["namespace"], w["metadata"]["name"]) for w in works] == [
        ("spoke-1", ENVELOPE),
        ("spoke-2", ENVELOPE),
    ]
    manifests = works[0]["spec"]["workload"]["manifests"]
    kinds = [m["kind"] for m in manifests]
    assert kinds == sorted(kinds)
    assert "PrometheusAgent" not in kinds
    (secret,) = [m for m in manifests if m["kind"] == "Secret"]
    assert secret["metadata"]["name"] == "logging-cloudwatch-auth"
    assert secret["data"] == {
        "aws_access_key_id": "a2V5LWlk",
        "aws_secret_access_key": "c2VjcmV0",
    }


def test_main(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Test the command line entry point."""
    output = tmp_path / "output.yaml"
    monkeypatch.setattr(
        sys,
        "argv",
        ["mcoa-addon", "reconcile", str(TESTDATA / "hub"), "--output-file", str(output)],
    )
    main()
    assert len(list(yaml.safe_load_all(output.read_text()))) == 2


def test_main_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test configuration errors exit with a non-zero code."""
    monkeypatch.setattr(
        sys, "argv", ["mcoa-addon", "reconcile", str(TESTDATA / "invalid")]
    )
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 1
    assert "Invalid kubernetes object" in capsys.readouterr().err
