"""Redis-backed key-value store (redis.asyncio)."""

import json
import logging
from typing import Any, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from tryon.errors import StoreUnavailable
from tryon.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(KeyValueStore):
    """Stores values as JSON strings; every Redis failure becomes StoreUnavailable."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        pool = aioredis.ConnectionPool.from_url(url, decode_responses=True)
        return cls(aioredis.Redis(connection_pool=pool))

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis GET failed: {exc}") from exc
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis SET failed: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as exc:
            raise StoreUnavailable(f"Redis DEL failed: {exc}") from exc

    async def list_append(self, key: str, item: Any, max_len: Optional[int] = None) -> None:
        pipe = self._client.pipeline(transaction=True)
        pipe.rpush(key, json.dumps(item))
        if max_len is not None:
            pipe.ltrim(key, -max_len, -1)
        try:
            await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailable(f"Redis RPUSH failed: {exc}") from exc

    async def list_items(self, key: str) -> List[Any]:
        try:
            raw = await self._client.lrange(key, 0, -1)
        except RedisError as exc:
            raise StoreUnavailable(f"Redis LRANGE failed: {exc}") from exc
        return [json.loads(item) for item in raw]

    async def list_remove(self, key: str, item: Any) -> int:
        try:
            return int(await self._client.lrem(key, 0, json.dumps(item)))
        except RedisError as exc:
            raise StoreUnavailable(f"Redis LREM failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            raise StoreUnavailable(f"Redis PING failed: {exc}") from exc

    async def close(self) -> None:
        logger.info("Closing Redis connection pool")
        await self._client.aclose()
