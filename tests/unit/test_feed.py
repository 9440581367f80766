"""Unit tests for the change feed and its store."""

import asyncio
import copy

import pytest
from unittest.mock import AsyncMock, Mock
from kubernetes_asyncio.client import ApiException

from stasher.controller.client import CustomResourceClient
from stasher.controller.feed import ChangeFeed, EventType
from stasher.controller.store import DeletedFinalStateUnknown, Store
from stasher.resources.backup_policy import BackupPolicy


def policy(body, name, rv):
    body = copy.deepcopy(body)
    body["metadata"]["name"] = name
    body["metadata"]["resourceVersion"] = rv
    return BackupPolicy(body)


class FakeClient:
    """Serves scripted list results and watch windows."""

    kind = BackupPolicy

    def __init__(self, lists, windows=()):
        self.lists = list(lists)
        self.windows = list(windows)

    async def list(self, namespace):
        result = self.lists.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def watch(self, namespace, resource_version, timeout_seconds):
        window = self.windows.pop(0) if self.windows else []
        for item in window:
            if isinstance(item, Exception):
                raise item
            yield item


def drain(channel):
    events = []
    while not channel.empty():
        events.append(channel.get_nowait())
    return events


class TestStore:
    def test_add_replace_delete(self, policy_body):
        store = Store()
        a = policy(policy_body, "a", "1")
        assert store.add(a) is None
        assert store.get("default/a") is a
        previous = store.replace([policy(policy_body, "b", "1")])
        assert list(previous) == ["default/a"]
        assert store.keys() == ["default/b"]
        assert store.delete("default/b").name == "b"
        assert len(store) == 0

    def test_list_namespace(self, policy_body):
        store = Store()
        store.add(policy(policy_body, "a", "1"))
        other = copy.deepcopy(policy_body)
        other["metadata"]["namespace"] = "other"
        store.add(BackupPolicy(other))
        assert [p.name for p in store.list_namespace("default")] == ["a"]


class TestChangeFeed:
    @pytest.mark.asyncio
    async def test_relist_emits_diff(self, policy_body):
        store, channel = Store(), asyncio.Queue()
        client = FakeClient(
            [
                ([policy(policy_body, "a", "1"), policy(policy_body, "b", "1")], "10"),
                ([policy(policy_body, "a", "2"), policy(policy_body, "c", "1")], "20"),
            ]
        )
        feed = ChangeFeed(client, store, channel)

        assert await feed.relist() == "10"
        assert feed.has_synced.is_set()
        assert [e.type for e in drain(channel)] == [EventType.ADDED, EventType.ADDED]

        assert await feed.relist() == "20"
        events = drain(channel)
        assert [(e.type, (e.new or e.old).key) for e in events] == [
            (EventType.UPDATED, "default/a"),
            (EventType.ADDED, "default/c"),
            (EventType.DELETED, "default/b"),
        ]
        assert isinstance(events[2].old, DeletedFinalStateUnknown)
        assert events[2].old.obj.name == "b"
        assert events[0].old.resource_version == "1"
        assert sorted(store.keys()) == ["default/a", "default/c"]

    @pytest.mark.asyncio
    async def test_unchanged_relist_is_silent(self, policy_body):
        store, channel = Store(), asyncio.Queue()
        a = policy(policy_body, "a", "1")
        feed = ChangeFeed(FakeClient([([a], "1"), ([a], "1")]), store, channel)
        await feed.relist()
        drain(channel)
        await feed.relist()
        assert channel.empty()

    @pytest.mark.asyncio
    async def test_watch_events_update_store(self, policy_body):
        store, channel = Store(), asyncio.Queue()
        window = [
            ("ADDED", policy(policy_body, "a", "2")),
            ("MODIFIED", policy(policy_body, "a", "3")),
            ("DELETED", policy(policy_body, "a", "4")),
        ]
        feed = ChangeFeed(FakeClient([([], "1")], [window]), store, channel)
        await feed.run_once()
        events = drain(channel)
        assert [e.type for e in events] == [
            EventType.ADDED,
            EventType.UPDATED,
            EventType.DELETED,
        ]
        assert events[1].old.resource_version == "2"
        assert events[1].new.resource_version == "3"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_gone_relists_immediately(self, policy_body):
        store, channel = Store(), asyncio.Queue()
        client = FakeClient(
            [([], "1"), ([policy(policy_body, "a", "5")], "5")],
            [[ApiException(status=410, reason="Gone")]],
        )
        feed = ChangeFeed(client, store, channel, retry_delay=60)
        task = asyncio.create_task(feed.run())
        event = await asyncio.wait_for(channel.get(), 1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert event.type is EventType.ADDED
        assert event.new.name == "a"

    @pytest.mark.asyncio
    async def test_other_errors_retry_after_delay(self, policy_body):
        store, channel = Store(), asyncio.Queue()
        client = FakeClient(
            [ApiException(status=500, reason="boom"), ([policy(policy_body, "a", "1")], "1")]
        )
        feed = ChangeFeed(client, store, channel, retry_delay=0.01)
        task = asyncio.create_task(feed.run())
        event = await asyncio.wait_for(channel.get(), 1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert event.new.name == "a"
        assert not client.lists


class TestCustomResourceClient:
    @pytest.fixture
    def client(self):
        client = CustomResourceClient(Mock(), BackupPolicy)
        client.custom_objects_api = Mock()
        return client

    @pytest.mark.asyncio
    async def test_list_namespaced(self, client, policy_body):
        client.custom_objects_api.list_namespaced_custom_object = AsyncMock(
            return_value={"items": [policy_body], "metadata": {"resourceVersion": "42"}}
        )

        items, rv = await client.list("default")

        assert rv == "42"
        assert [p.key for p in items] == ["default/p1"]
        kwargs = client.custom_objects_api.list_namespaced_custom_object.call_args.kwargs
        assert kwargs["group"] == "stasher.io"
        assert kwargs["plural"] == "backuppolicies"

    @pytest.mark.asyncio
    async def test_list_all_namespaces(self, client):
        client.custom_objects_api.list_cluster_custom_object = AsyncMock(
            return_value={"items": []}
        )
        assert await client.list("") == ([], "")

    @pytest.mark.asyncio
    async def test_get(self, client, policy_body):
        client.custom_objects_api.get_namespaced_custom_object = AsyncMock(
            return_value=policy_body
        )
        assert (await client.get("default", "p1")).name == "p1"

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        client.custom_objects_api.get_namespaced_custom_object = AsyncMock(
            side_effect=ApiException(status=404)
        )
        assert await client.get("default", "p1") is None
