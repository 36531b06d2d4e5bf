"""Redis-based key-value access shared by the item and alert stores."""

from __future__ import annotations

import json
from typing import Any, Mapping

import redis.asyncio as redis

from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)


def _encode(value: Any) -> str:
    return json.dumps(value)


def _decode(value: Any) -> Any:
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return value


class StateManager:
    """Thin async wrapper over one Redis database.

    Every value is stored JSON-encoded so that strings, numbers and nested
    structures round-trip without guessing.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        if redis_url is None and client is None:
            raise ValueError("StateManager needs a redis_url or a client")
        self.redis_url = redis_url
        self.redis_client: redis.Redis | None = client

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self.redis_client is None:
            self.redis_client = await redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("redis_disconnected", url=self.redis_url)

    async def client(self) -> redis.Redis:
        if not self.redis_client:
            await self.connect()
        return self.redis_client

    async def ping(self) -> bool:
        """Check the server is reachable."""
        client = await self.client()
        return bool(await client.ping())

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL."""
        client = await self.client()
        await client.set(key, _encode(value), ex=ttl)
        logger.debug("state_set", key=key, ttl=ttl)

    async def get(self, key: str) -> Any:
        """Get a value, or None if the key is missing."""
        client = await self.client()
        value = await client.get(key)
        return None if value is None else _decode(value)

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        client = await self.client()
        removed = await client.delete(*keys)
        logger.debug("state_deleted", keys=keys, removed=removed)
        return removed

    async def exists(self, key: str) -> bool:
        """Check if a key exists."""
        client = await self.client()
        return bool(await client.exists(key))

    async def hset(self, key: str, mapping: Mapping[str, Any]) -> None:
        """Set several hash fields."""
        client = await self.client()
        await client.hset(key, mapping={f: _encode(v) for f, v in mapping.items()})

    async def hget(self, key: str, field: str) -> Any:
        """Get a hash field."""
        client = await self.client()
        value = await client.hget(key, field)
        return None if value is None else _decode(value)

    async def hgetall(self, key: str) -> dict[str, Any]:
        """Get all hash fields; empty if the hash does not exist."""
        client = await self.client()
        data = await client.hgetall(key)
        return {field: _decode(value) for field, value in data.items()}

    async def zadd(self, key: str, mapping: dict[str, float], **kwargs: Any) -> None:
        """Add members to a sorted set."""
        client = await self.client()
        await client.zadd(key, mapping, **kwargs)

    async def zrangebyscore(
        self,
        key: str,
        min_score: float | str,
        max_score: float | str,
        desc: bool = False,
    ) -> list[str]:
        """Get sorted set members within a score range."""
        client = await self.client()
        if desc:
            return await client.zrevrangebyscore(key, max_score, min_score)
        return await client.zrangebyscore(key, min_score, max_score)

    async def zrem(self, key: str, *members: str) -> None:
        """Remove members from a sorted set."""
        client = await self.client()
        await client.zrem(key, *members)

    async def sadd(self, key: str, *members: str) -> None:
        client = await self.client()
        await client.sadd(key, *members)

    async def smembers(self, key: str) -> set[str]:
        client = await self.client()
        return set(await client.smembers(key))

    async def srem(self, key: str, *members: str) -> None:
        client = await self.client()
        await client.srem(key, *members)

    async def pipeline(self, transaction: bool = True) -> Any:
        """Start a pipeline; callers queue raw commands with encoded values."""
        client = await self.client()
        return client.pipeline(transaction=transaction)

    @staticmethod
    def encode_mapping(mapping: Mapping[str, Any]) -> dict[str, str]:
        return {f: _encode(v) for f, v in mapping.items()}

    @staticmethod
    def decode_value(value: Any) -> Any:
        """Decode a raw field read inside a pipeline; works for str and bytes replies."""
        return _decode(value)

    async def publish(self, channel: str, message: str) -> None:
        """Publish a message to a channel."""
        client = await self.client()
        await client.publish(channel, message)
        logger.debug("message_published", channel=channel)
