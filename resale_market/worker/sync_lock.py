"""Redis lock so only one worker runs the market sync job at a time."""

import json
import logging
from typing import Any, Optional
from uuid import uuid4

import redis.asyncio as redis

from resale_market.config import settings
from resale_market.db.models import utcnow

logger = logging.getLogger(__name__)

LOCK_KEY = "market:sync:lock"

# 0 = not held, 1 = deleted, 2 = held by someone else
RELEASE_SCRIPT = """
local lock_value = redis.call('GET', KEYS[1])
if not lock_value then
    return 0
end

local cjson = require('cjson')
local success, data = pcall(cjson.decode, lock_value)
if not success then
    return 2
end

if data.run_id == ARGV[1] and data.token == ARGV[2] then
    redis.call('DEL', KEYS[1])
    return 1
end
return 2
"""


class SyncLockManager:
    """
    SET NX EX lock with token ownership.

    The lock expires on its own after ``ttl_seconds`` so a crashed worker
    cannot block future runs forever. Only the holder of the token can
    release it early.
    """

    def __init__(self, redis_url: Optional[str] = None, key: str = LOCK_KEY):
        self.redis_url = redis_url or settings.redis_url
        self.key = key
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire_lock(
        self, run_id: str, ttl_seconds: Optional[int] = None, trigger: str = "scheduled"
    ) -> Optional[str]:
        """
        Try to take the lock.

        Returns:
            Ownership token, or None if another run holds the lock
        """
        redis_client = await self._get_redis()
        ttl = ttl_seconds or settings.sync_lock_ttl_seconds

        token = uuid4().hex
        lock_value = json.dumps({
            "run_id": run_id,
            "token": token,
            "trigger": trigger,
            "started_at": utcnow().isoformat(),
        })

        acquired = await redis_client.set(self.key, lock_value, nx=True, ex=ttl)
        if acquired:
            logger.info(f"Acquired sync lock for run_id: {run_id[:16]}...")
            return token

        info = await self.get_lock_info()
        holder = (info or {}).get("run_id") or "unknown"
        logger.debug(f"Sync lock already held by run_id: {holder[:16]}...")
        return None

    async def release_lock(self, run_id: str, token: str) -> bool:
        """Release the lock if ``run_id``/``token`` still own it."""
        redis_client = await self._get_redis()
        result = await redis_client.eval(RELEASE_SCRIPT, 1, self.key, run_id, token)

        if result == 2:
            logger.warning(f"Refused to release sync lock not owned by run_id: {run_id[:16]}...")
            return False
        if result == 1:
            logger.info(f"Released sync lock for run_id: {run_id[:16]}...")
        return True

    async def get_lock_info(self) -> Optional[dict[str, Any]]:
        redis_client = await self._get_redis()
        value = await redis_client.get(self.key)
        if not value:
            return None

        ttl = await redis_client.ttl(self.key)
        try:
            data = json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Sync lock holds an invalid value: {value!r}")
            return {"raw_value": value, "ttl_seconds": ttl if ttl > 0 else None}

        return {
            "run_id": data.get("run_id"),
            "trigger": data.get("trigger"),
            "started_at": data.get("started_at"),
            "ttl_seconds": ttl if ttl > 0 else None,
        }


sync_lock_manager = SyncLockManager()
