"""Core leaderboard operations backed by a single Redis sorted set.

Every richer structure (time-ordered, composite, periodic, matrix) wraps one
of these and exposes the same read interface described by ``Ranking``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from redis.asyncio import Redis


@dataclass(slots=True)
class Entry:
    id: str
    score: float
    rank: int


class Ranking(Protocol):
    """Read interface shared by every leaderboard layer. Ranks are one-based."""

    @property
    def path(self) -> str: ...

    @property
    def low_to_high(self) -> bool: ...

    async def score(self, id: str) -> float | None: ...

    async def rank(self, id: str) -> int | None: ...

    async def peek(self, id: str) -> Entry | None: ...

    async def list(self, low: int, high: int) -> list[Entry]: ...

    async def top(self, max: int = 10) -> list[Entry]: ...

    async def around(self, id: str, distance: int, fill_borders: bool = False) -> list[Entry]: ...

    async def count(self) -> int: ...

    async def clear(self) -> None: ...


def around_bounds(rank: int, count: int, distance: int, fill_borders: bool) -> tuple[int, int]:
    """Zero-based inclusive window of ``distance`` entries on each side of ``rank``.

    With ``fill_borders`` the window slides away from a border so it keeps
    ``2 * distance + 1`` entries whenever the set is large enough.
    """
    last = count - 1
    low, high = rank - distance, rank + distance
    if fill_borders:
        if low < 0:
            high = min(last, high - low)
            low = 0
        elif high > last:
            low = max(0, low - (high - last))
            high = last
    else:
        low = max(0, low)
        high = min(last, high)
    return low, high


class Leaderboard:
    def __init__(self, redis_client: Redis, path: str, low_to_high: bool = False):
        self.redis = redis_client
        self._path = path
        self._low_to_high = low_to_high

    @property
    def path(self) -> str:
        return self._path

    @property
    def low_to_high(self) -> bool:
        return self._low_to_high

    async def add(self, member: str, score: float) -> None:
        await self.redis.zadd(self.path, {member: score})

    async def improve(self, member: str, score: float) -> bool:
        # GT/LT only let a better score through; CH counts updates as well as inserts.
        changed = await self.redis.zadd(
            self.path,
            {member: score},
            ch=True,
            gt=not self.low_to_high,
            lt=self.low_to_high,
        )
        return changed == 1

    async def incr(self, member: str, amount: float) -> float:
        return float(await self.redis.zincrby(self.path, amount, member))

    async def remove(self, member: str) -> None:
        await self.redis.zrem(self.path, member)

    async def clear(self) -> None:
        await self.redis.delete(self.path)

    async def count(self) -> int:
        return int(await self.redis.zcard(self.path))

    async def score(self, member: str) -> float | None:
        score = await self.redis.zscore(self.path, member)
        return None if score is None else float(score)

    async def rank(self, member: str) -> int | None:
        rank = await self._zero_based_rank(member)
        # Redis returns zero-based rank; the leaderboard contract is one-based.
        return None if rank is None else rank + 1

    async def peek(self, member: str) -> Entry | None:
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.zscore(self.path, member)
            if self.low_to_high:
                pipe.zrank(self.path, member)
            else:
                pipe.zrevrank(self.path, member)
            score, rank = await pipe.execute()
        if score is None or rank is None:
            return None
        return Entry(id=member, score=float(score), rank=rank + 1)

    async def list(self, low: int, high: int) -> list[Entry]:
        low = max(low, 1)
        if high < low:
            return []
        return await self._range(low - 1, high - 1)

    async def top(self, max: int = 10) -> list[Entry]:
        return await self.list(1, max)

    async def around(self, member: str, distance: int, fill_borders: bool = False) -> list[Entry]:
        if distance < 0:
            return []
        rank = await self._zero_based_rank(member)
        if rank is None:
            return []
        low, high = around_bounds(rank, await self.count(), distance, fill_borders)
        return await self._range(low, high)

    async def _zero_based_rank(self, member: str) -> int | None:
        if self.low_to_high:
            return await self.redis.zrank(self.path, member)
        return await self.redis.zrevrank(self.path, member)

    async def _range(self, start: int, end: int) -> list[Entry]:
        if self.low_to_high:
            rows = await self.redis.zrange(self.path, start, end, withscores=True)
        else:
            rows = await self.redis.zrevrange(self.path, start, end, withscores=True)
        return [
            Entry(id=member, score=float(score), rank=index)
            for index, (member, score) in enumerate(rows, start=start + 1)
        ]
