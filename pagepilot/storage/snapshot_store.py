"""
Redis persistence for health monitor and cost tracker snapshots.

Snapshots are single JSON blobs so that a restart restores breaker state
and usage totals in one read each.
"""

import json
import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis

from ..llm.constants import RedisKeys
from ..utils.logging import log_event
from ..utils.result import Result, Success, storage_error

logger = logging.getLogger(__name__)


class SnapshotStore:
    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def _save(self, key: str, data: Dict[str, Any]) -> Result[None, str]:
        try:
            await self.redis.set(key, json.dumps(data))
        except Exception as e:
            log_event(
                "snapshot_save_failed",
                {"key": key, "error": str(e), "error_type": type(e).__name__},
                level=logging.ERROR,
            )
            return storage_error(f"Failed to save snapshot {key}: {e}")

        log_event("snapshot_saved", {"key": key, "entries": len(data)}, level=logging.DEBUG)
        return Success(None)

    async def _load(self, key: str) -> Result[Optional[Dict[str, Any]], str]:
        try:
            raw = await self.redis.get(key)
            if not raw:
                return Success(None)
            data = json.loads(raw)
        except Exception as e:
            log_event(
                "snapshot_load_failed",
                {"key": key, "error": str(e), "error_type": type(e).__name__},
                level=logging.ERROR,
            )
            return storage_error(f"Failed to load snapshot {key}: {e}")

        if not isinstance(data, dict):
            return storage_error(f"Snapshot {key} is not an object")
        return Success(data)

    async def save_health(self, data: Dict[str, Any]) -> Result[None, str]:
        return await self._save(RedisKeys.HEALTH_SNAPSHOT, data)

    async def load_health(self) -> Result[Optional[Dict[str, Any]], str]:
        return await self._load(RedisKeys.HEALTH_SNAPSHOT)

    async def save_usage(self, data: Dict[str, Any]) -> Result[None, str]:
        return await self._save(RedisKeys.USAGE_SNAPSHOT, data)

    async def load_usage(self) -> Result[Optional[Dict[str, Any]], str]:
        return await self._load(RedisKeys.USAGE_SNAPSHOT)
