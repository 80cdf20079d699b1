"""Unit tests for RedisCheckpointStore using fakeredis."""

from __future__ import annotations

import json
from unittest.mock import patch

import fakeredis
import pytest

from layered.core.exceptions import CheckpointError
from layered.persistence.redis_backend import RedisCheckpointStore


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def fake_client(fake_server):
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture
def store(fake_client):
    with patch("redis.Redis", return_value=fake_client):
        return RedisCheckpointStore(host="localhost", port=6379, db=0, ttl=120)


class TestGetPut:
    def test_returns_none_on_miss(self, store):
        assert store.get("job", "step") is None

    def test_round_trips_result(self, store):
        store.put("job", "upload-output-0", {"ok": True})
        checkpoint = store.get("job", "upload-output-0")
        assert checkpoint.result == {"ok": True}
        assert checkpoint.job_id == "job"

    def test_none_result_is_stored(self, store):
        store.put("job", "generate-name", None)
        assert store.get("job", "generate-name").result is None

    def test_sets_ttl(self, store, fake_client):
        store.put("job", "s", 1)
        assert 0 < fake_client.ttl("checkpoint:job:s") <= 120

    def test_value_layout(self, store, fake_client):
        store.put("job", "s", [1, 2])
        assert json.loads(fake_client.get("checkpoint:job:s"))["result"] == [1, 2]


class TestListJob:
    def test_lists_only_this_job(self, store):
        store.put("job", "generate-layers", {})
        store.put("job", "upload-output-1", None)
        store.put("job-2", "generate-layers", {})
        steps = sorted(c.step_name for c in store.list_job("job"))
        assert steps == ["generate-layers", "upload-output-1"]


class TestErrorWrapping:
    def test_get_wraps_redis_error(self):
        b = RedisCheckpointStore.__new__(RedisCheckpointStore)
        b._client = None  # will cause AttributeError -> CheckpointError
        with pytest.raises(CheckpointError):
            b.get("job", "step")

    def test_put_wraps_redis_error(self):
        b = RedisCheckpointStore.__new__(RedisCheckpointStore)
        b._client = None
        b._ttl = 60
        with pytest.raises(CheckpointError):
            b.put("job", "step", 1)
