import pytest

from pagepilot.llm.constants import RedisKeys
from pagepilot.storage.snapshot_store import SnapshotStore
from tests.utils.assertions import assert_event_logged


@pytest.fixture
def snapshot_store(fake_redis) -> SnapshotStore:
    return SnapshotStore(fake_redis)


class TestSnapshotStore:

    @pytest.mark.asyncio
    async def test_save_and_load_health(self, snapshot_store, fake_redis):
        data = {"openai": {"provider_id": "openai", "circuit_state": "open"}}

        assert (await snapshot_store.save_health(data)).is_success()

        assert RedisKeys.HEALTH_SNAPSHOT in fake_redis.store
        assert (await snapshot_store.load_health()).unwrap() == data

    @pytest.mark.asyncio
    async def test_save_and_load_usage(self, snapshot_store):
        data = {"usage": {"groq-tiny": {"request_count": 3}}, "alerts": []}

        await snapshot_store.save_usage(data)

        assert (await snapshot_store.load_usage()).unwrap() == data

    @pytest.mark.asyncio
    async def test_missing_snapshot_loads_none(self, snapshot_store):
        assert (await snapshot_store.load_health()).unwrap() is None

    @pytest.mark.asyncio
    async def test_save_failure(self, snapshot_store, fake_redis, caplog):
        fake_redis.fail = True

        result = await snapshot_store.save_usage({"usage": {}})

        assert result.is_failure()
        assert result.error_type == "StorageError"
        assert_event_logged(caplog, "snapshot_save_failed", key=RedisKeys.USAGE_SNAPSHOT)

    @pytest.mark.asyncio
    async def test_corrupt_snapshot(self, snapshot_store, fake_redis, caplog):
        fake_redis.store[RedisKeys.HEALTH_SNAPSHOT] = "not json"

        result = await snapshot_store.load_health()

        assert result.is_failure()
        assert_event_logged(caplog, "snapshot_load_failed")

    @pytest.mark.asyncio
    async def test_non_object_snapshot(self, snapshot_store, fake_redis):
        fake_redis.store[RedisKeys.HEALTH_SNAPSHOT] = "[1, 2]"

        assert (await snapshot_store.load_health()).is_failure()
