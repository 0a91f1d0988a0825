"""Redis client creation used by application startup and tests."""

from __future__ import annotations

from redis.asyncio import Redis

from rankmatrix.config import DEFAULT_REDIS_URL


def create_redis_client(redis_url: str | None = None) -> Redis:
    # Member strings and pointer values are handled as text throughout.
    return Redis.from_url(redis_url or DEFAULT_REDIS_URL, decode_responses=True)
