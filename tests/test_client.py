"""Tests for the in memory API client."""

import pytest

from mcoa_addon.client import EventType, InMemoryClient, WatchEvent
from mcoa_addon.exceptions import AlreadyExistsError, ConflictError, ObjectNotFoundError
from mcoa_addon.manifest import new_object


@pytest.fixture(name="client")
def client_fixture() -> InMemoryClient:
    return InMemoryClient()


async def test_create_get_delete(client: InMemoryClient) -> None:
    """Test the lifecycle of an object."""
    created = await client.create(new_object("ConfigMap", "settings", "ns", data={"a": "b"}))
    assert created["metadata"]["resourceVersion"] == "1"
    obj = await client.get("ConfigMap", "ns", "settings")
    assert obj["data"] == {"a": "b"}

    with pytest.raises(AlreadyExistsError):
        await client.create(new_object("ConfigMap", "settings", "ns"))

    await client.delete("ConfigMap", "ns", "settings")
    with pytest.raises(ObjectNotFoundError):
        await client.get("ConfigMap", "ns", "settings")
    with pytest.raises(ObjectNotFoundError):
        await client.delete("ConfigMap", "ns", "settings")
    assert client.writes == {"create": 1, "delete": 1}


async def test_list_filters(client: InMemoryClient) -> None:
    """Test listing by kind, namespace and labels."""
    client.add_object(new_object("ConfigMap", "b", "ns1", labels={"app": "x"}))
    client.add_object(new_object("ConfigMap", "a", "ns2", labels={"app": "x"}))
    client.add_object(new_object("ConfigMap", "c", "ns1"))
    client.add_object(new_object("Secret", "d", "ns1", labels={"app": "x"}))

    names = [obj["metadata"]["name"] for obj in await client.list("ConfigMap")]
    assert names == ["b", "c", "a"]
    names = [obj["metadata"]["name"] for obj in await client.list("ConfigMap", "ns1")]
    assert names == ["b", "c"]
    names = [
        obj["metadata"]["name"]
        for obj in await client.list("ConfigMap", labels={"app": "x"})
    ]
    assert names == ["b", "a"]
    assert client.total_writes == 0


async def test_update_conflict(client: InMemoryClient) -> None:
    """Test updates with a stale resource version are rejected."""
    client.add_object(new_object("ConfigMap", "settings", "ns", data={"a": "1"}))
    first = await client.get("ConfigMap", "ns", "settings")
    second = await client.get("ConfigMap", "ns", "settings")

    first["data"] = {"a": "2"}
    await client.update(first)
    second["data"] = {"a": "3"}
    with pytest.raises(ConflictError):
        await client.update(second)


async def test_update_preserves_status(client: InMemoryClient) -> None:
    """Test update and update_status only touch their own part of the object."""
    obj = new_object("ManagedClusterAddOn", "addon", "spoke-1", spec={"a": 1})
    obj["status"] = {"conditions": []}
    client.add_object(obj)

    current = await client.get("ManagedClusterAddOn", "spoke-1", "addon")
    current["spec"] = {"a": 2}
    current["status"] = {"conditions": [{"type": "Ignored"}]}
    await client.update(current)
    current = await client.get("ManagedClusterAddOn", "spoke-1", "addon")
    assert current["spec"] == {"a": 2}
    assert current["status"] == {"conditions": []}

    current["spec"] = {"a": 3}
    current["status"] = {"conditions": [{"type": "Available"}]}
    await client.update_status(current)
    current = await client.get("ManagedClusterAddOn", "spoke-1", "addon")
    assert current["spec"] == {"a": 2}
    assert current["status"] == {"conditions": [{"type": "Available"}]}
    assert client.writes == {"update": 1, "update_status": 1}


async def test_listener(client: InMemoryClient) -> None:
    """Test watch events delivered to listeners."""
    events: list[WatchEvent] = []
    remove = client.add_listener(events.append)

    await client.create(new_object("ConfigMap", "settings", "ns", data={"a": "1"}))
    current = await client.get("ConfigMap", "ns", "settings")
    current["data"] = {"a": "2"}
    await client.update(current)
    await client.delete("ConfigMap", "ns", "settings")

    assert [event.type for event in events] == [
        EventType.ADDED,
        EventType.MODIFIED,
        EventType.DELETED,
    ]
    assert events[1].old is not None
    assert events[1].old["data"] == {"a": "1"}
    assert events[1].obj["data"] == {"a": "2"}
    assert events[2].kind == "ConfigMap"

    remove()
    client.add_object(new_object("ConfigMap", "other", "ns"))
    assert len(events) == 3


async def test_listener_failure_is_logged(client: InMemoryClient) -> None:
    """Test a failing listener does not break writes."""

    def fail(event: WatchEvent) -> None:
        raise ValueError("boom")

    client.add_listener(fail)
    await client.create(new_object("ConfigMap", "settings", "ns"))
    assert (await client.get("ConfigMap", "ns", "settings"))["metadata"]["name"] == "settings"


async def test_uid(client: InMemoryClient) -> None:
    """Test objects keep the uid assigned on creation across updates."""
    created = await client.create(new_object("ConfigMap", "settings", "ns", data={"a": "1"}))
    uid = created["metadata"]["uid"]
    assert uid

    created["data"] = {"a": "2"}
    updated = await client.update(created)
    assert updated["metadata"]["uid"] == uid
    replaced = client.add_object(new_object("ConfigMap", "settings", "ns"))
    assert replaced["metadata"]["uid"] == uid

    other = client.add_object(new_object("ConfigMap", "other", "ns"))
    assert other["metadata"]["uid"] != uid
