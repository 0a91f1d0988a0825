"""Leaderboards that keep one live member per entity and break ties by time.

Members are ``<13-digit recency>:<entity-id>``. Equal scores are ordered by
member, ascending for low-to-high boards and descending for high-to-low ones.
The recency field is the raw epoch milliseconds when earlier members must come
first in that order, and ``10**13 - ms`` when later members must.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis

from rankmatrix.clock import Clock, epoch_millis, utc_now
from rankmatrix.services.pointer import PointerLeaderboard
from rankmatrix.storage import scripts

logger = logging.getLogger(__name__)

RECENCY_DIGITS = 13
RECENCY_LIMIT = 10**RECENCY_DIGITS


def recency_value(millis: int, earlier_first: bool) -> int:
    return millis if earlier_first else RECENCY_LIMIT - millis


def recency_stamp(millis: int, earlier_first: bool) -> str:
    return f"{recency_value(millis, earlier_first):0{RECENCY_DIGITS}d}"


class TimestampedLeaderboard(PointerLeaderboard):
    """Time-ordered leaderboard whose writes each run as one Redis script."""

    def __init__(
        self,
        redis_client: Redis,
        path: str,
        low_to_high: bool = False,
        earlier_to_later: bool = True,
        now: Clock = utc_now,
    ):
        super().__init__(redis_client, path, low_to_high)
        self.earlier_to_later = earlier_to_later
        self.now = now
        self._add_script = redis_client.register_script(scripts.TIMESTAMPED_ADD)
        self._improve_script = redis_client.register_script(scripts.TIMESTAMPED_IMPROVE)
        self._incr_script = redis_client.register_script(scripts.TIMESTAMPED_INCR)
        self._remove_script = redis_client.register_script(scripts.TIMESTAMPED_REMOVE)

    def timestamp(self) -> str:
        # Descending boards list equal scores by descending member.
        earlier_first = self.earlier_to_later == self.low_to_high
        return recency_stamp(epoch_millis(self.now()), earlier_first)

    def encode(self, entity_id: str) -> str:
        return f"{self.timestamp()}:{entity_id}"

    async def add(self, id: str, score: float) -> None:
        await self._add_script(
            keys=[self.path, self.pointer_key(id)],
            args=[self.timestamp(), id, score],
        )

    async def improve(self, id: str, score: float) -> bool:
        updated = await self._improve_script(
            keys=[self.path, self.pointer_key(id)],
            args=[self.timestamp(), scripts.flag(self.low_to_high), id, score],
        )
        return updated == 1

    async def incr(self, id: str, amount: float) -> float:
        total = await self._incr_script(
            keys=[self.path, self.pointer_key(id)],
            args=[self.timestamp(), id, amount],
        )
        return float(total)

    async def remove(self, id: str) -> None:
        await self._remove_script(keys=[self.path, self.pointer_key(id)])


class PipelinedTimestampedLeaderboard(TimestampedLeaderboard):
    """Time-ordered leaderboard that writes through a MULTI pipeline.

    Known defect: the pointer is read in one round trip and the replacement is
    written in another. Two concurrent writes for the same entity can both read
    the same previous member, leaving an orphaned member in the set or losing
    one of the updates. Use ``TimestampedLeaderboard`` for new leaderboards.
    """

    async def add(self, id: str, score: float) -> None:
        await self._replace(id, await self.current_member(id), score)

    async def improve(self, id: str, score: float) -> bool:
        previous = await self.current_member(id)
        if previous is not None:
            current = await self.board.score(previous)
            if current is not None and not self._is_better(score, current):
                return False
        await self._replace(id, previous, score)
        return True

    async def incr(self, id: str, amount: float) -> float:
        previous = await self.current_member(id)
        total = amount
        if previous is not None:
            current = await self.board.score(previous)
            if current is not None:
                total += current
        await self._replace(id, previous, total)
        return total

    async def remove(self, id: str) -> None:
        previous = await self.current_member(id)
        if previous is None:
            return
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.path, previous)
            pipe.delete(self.pointer_key(id))
            await pipe.execute()

    def _is_better(self, score: float, current: float) -> bool:
        return score < current if self.low_to_high else score > current

    async def _replace(self, id: str, previous: str | None, score: float) -> None:
        member = self.encode(id)
        async with self.redis.pipeline(transaction=True) as pipe:
            if previous is not None and previous != member:
                pipe.zrem(self.path, previous)
            pipe.zadd(self.path, {member: score})
            pipe.set(self.pointer_key(id), member)
            await pipe.execute()
        logger.debug("Replaced %s with %s in %s", previous, member, self.path)
