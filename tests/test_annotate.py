"""Tests for the delivery annotator."""

from mcoa_addon.annotate import (
    config_hash,
    fnv1a_64,
    update_annotation_on_manifest_works,
)
from mcoa_addon.client import InMemoryClient
from mcoa_addon.manifest import ANNOTATION_CONFIG_HASH, LABEL_ADDON_NAME, new_object
from mcoa_addon.options import Options


def test_fnv1a_64() -> None:
    """Test the hash against the published FNV-1a test vectors."""
    assert fnv1a_64(b"") == 0xCBF29CE484222325
    assert fnv1a_64(b"a") == 0xAF63DC4C8601EC8C
    assert fnv1a_64(b"foobar") == 0x85944171F73967E8


def test_config_hash_stable() -> None:
    """Test the hash only depends on the content of its inputs."""
    first = config_hash(Options(metrics_disabled=True), {"b": 1, "a": [1, 2]})
    second = config_hash(Options(metrics_disabled=True), {"a": [1, 2], "b": 1})
    assert first == second
    assert first.isdigit()
    assert config_hash(Options()) != config_hash(Options(metrics_disabled=True))
    assert config_hash(Options(), {"a": [1, 2]}) != config_hash(Options(), {"a": [2, 1]})


async def test_update_annotation_on_manifest_works() -> None:
    """Test the hash is stamped on the labelled envelopes only."""
    labels = {LABEL_ADDON_NAME: "addon"}
    client = InMemoryClient(
        [
            new_object("ManifestWork", "addon-deploy-0", "spoke-1", labels=labels, spec={}),
            new_object(
                "ManifestWork",
                "addon-deploy-1",
                "spoke-1",
                labels=labels,
                annotations={"other": "annotation"},
                spec={},
            ),
            new_object("ManifestWork", "unrelated", "spoke-1", spec={}),
            new_object("ManifestWork", "addon-deploy-0", "spoke-2", labels=labels, spec={}),
        ]
    )

    assert await update_annotation_on_manifest_works(client, "spoke-1", "addon", "42") == 2
    first = await client.get("ManifestWork", "spoke-1", "addon-deploy-0")
    assert first["metadata"]["annotations"] == {ANNOTATION_CONFIG_HASH: "42"}
    second = await client.get("ManifestWork", "spoke-1", "addon-deploy-1")
    assert second["metadata"]["annotations"] == {
        "other": "annotation",
        ANNOTATION_CONFIG_HASH: "42",
    }
    unrelated = await client.get("ManifestWork", "spoke-1", "unrelated")
    assert "annotations" not in unrelated["metadata"]
    assert client.writes == {"update": 2}

    # Unchanged envelopes are not written
    assert await update_annotation_on_manifest_works(client, "spoke-1", "addon", "42") == 0
    assert client.writes == {"update": 2}


async def test_update_annotation_no_envelopes() -> None:
    """Test a namespace without envelopes is not an error."""
    client = InMemoryClient()
    assert await update_annotation_on_manifest_works(client, "spoke-1", "addon", "42") == 0
