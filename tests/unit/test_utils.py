"""Unit tests for helpers, error predicates, polling and settings."""

import json

import pytest
from kubernetes_asyncio.client import ApiException, V1ObjectMeta

from stasher.types.settings import Settings
from stasher.utils.errors import (
    InvalidResourceError,
    PollTimeoutError,
    ReconcileError,
    already_exists_error,
    gone_error,
    not_found_error,
)
from stasher.utils.helpers import (
    canonicalize_dict,
    decode_json,
    get_annotation,
    meta_namespace_key,
    split_meta_namespace_key,
)
from stasher.utils.poll import poll_until


def api_error(status, reason=None):
    ex = ApiException(status=status)
    if reason is not None:
        ex.body = json.dumps({"kind": "Status", "reason": reason})
    return ex


class TestKeys:
    def test_round_trip(self):
        assert meta_namespace_key("default", "p1") == "default/p1"
        assert split_meta_namespace_key("default/p1") == ("default", "p1")

    def test_cluster_scoped(self):
        assert meta_namespace_key("", "p1") == "p1"
        assert split_meta_namespace_key("p1") == ("", "p1")

    def test_bad_key(self):
        with pytest.raises(ValueError):
            split_meta_namespace_key("a/b/c")


class TestHelpers:
    def test_canonicalize_sorts_keys(self):
        assert canonicalize_dict({"b": 1, "a": {"d": 2, "c": 3}}) == canonicalize_dict(
            {"a": {"c": 3, "d": 2}, "b": 1}
        )
        assert decode_json(canonicalize_dict({"a": [1, 2]})) == {"a": [1, 2]}

    def test_get_annotation(self):
        assert get_annotation({"annotations": {"x": "1"}}, "x") == "1"
        assert get_annotation(V1ObjectMeta(annotations={"x": "2"}), "x") == "2"
        assert get_annotation(V1ObjectMeta(), "x") is None
        assert get_annotation(None, "x") is None


class TestErrorPredicates:
    def test_already_exists(self):
        assert already_exists_error(api_error(409, "AlreadyExists"))
        assert not already_exists_error(api_error(409, "Conflict"))
        assert not already_exists_error(RuntimeError())

    def test_not_found(self):
        assert not_found_error(api_error(404))
        assert not not_found_error(api_error(500))

    def test_gone(self):
        assert gone_error(api_error(410, "Expired"))
        assert not gone_error(api_error(404))

    def test_messages(self):
        err = InvalidResourceError("BackupPolicy", "default/p1", {"schedule": ["empty"]})
        assert str(err) == "invalid BackupPolicy default/p1: schedule: empty"
        agg = ReconcileError("default/p1", [RuntimeError("a"), RuntimeError("b")])
        assert "2 error(s)" in str(agg)


class TestPollUntil:
    @pytest.mark.asyncio
    async def test_returns_when_condition_holds(self):
        calls = []

        async def condition():
            calls.append(1)
            return len(calls) == 3

        await poll_until(condition, interval=0.001, timeout=1)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_times_out(self):
        async def never():
            return False

        with pytest.raises(PollTimeoutError):
            await poll_until(never, interval=0.005, timeout=0.02)

    @pytest.mark.asyncio
    async def test_condition_errors_propagate(self):
        async def broken():
            raise RuntimeError("api down")

        with pytest.raises(RuntimeError):
            await poll_until(broken, interval=0.001, timeout=1)


class TestSettings:
    def test_overrides(self):
        settings = Settings(max_num_requeues=9, watch_namespace=None)
        assert settings.max_num_requeues == 9
        assert settings.watch_namespace == Settings.watch_namespace

    def test_unknown_setting(self):
        with pytest.raises(TypeError):
            Settings(not_a_setting=1)
