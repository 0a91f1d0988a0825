"""Entity-addressed leaderboards over encoded sorted-set members.

A sorted set cannot update a member in place, so entities whose member string
changes on every write are tracked through two tables that live side by side:

- the ordered index, a sorted set of encoded members at ``<path>``;
- the pointer map, one string key per entity at ``<path>/ids/<entity-id>``
  holding the entity's current member.

Reads go through the pointer map, then the ordered index, and decode member
strings back to entity ids.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from redis.asyncio import Redis

from rankmatrix.services.leaderboard import Entry, Leaderboard
from rankmatrix.storage import scripts

logger = logging.getLogger(__name__)


def pointer_key(path: str, entity_id: str) -> str:
    return f"{path}/ids/{entity_id}"


class PointerLeaderboard:
    def __init__(self, redis_client: Redis, path: str, low_to_high: bool = False):
        self.redis = redis_client
        self.board = Leaderboard(redis_client, path, low_to_high)
        self._clear_script = redis_client.register_script(scripts.CLEAR_WITH_POINTERS)

    @property
    def path(self) -> str:
        return self.board.path

    @property
    def low_to_high(self) -> bool:
        return self.board.low_to_high

    def pointer_key(self, entity_id: str) -> str:
        return pointer_key(self.path, entity_id)

    def decode(self, member: str) -> str:
        """Recover the entity id from a stored member."""
        return member.split(":", 1)[1]

    async def current_member(self, entity_id: str) -> str | None:
        return await self.redis.get(self.pointer_key(entity_id))

    async def score(self, id: str) -> float | None:
        member = await self.current_member(id)
        if member is None:
            return None
        return await self.board.score(member)

    async def rank(self, id: str) -> int | None:
        member = await self.current_member(id)
        if member is None:
            return None
        return await self.board.rank(member)

    async def peek(self, id: str) -> Entry | None:
        member = await self.current_member(id)
        if member is None:
            return None
        entry = await self.board.peek(member)
        if entry is None:
            return None
        entry.id = id
        return entry

    async def list(self, low: int, high: int) -> list[Entry]:
        return self._normalize(await self.board.list(low, high))

    async def top(self, max: int = 10) -> list[Entry]:
        return await self.list(1, max)

    async def around(self, id: str, distance: int, fill_borders: bool = False) -> list[Entry]:
        member = await self.current_member(id)
        if member is None:
            return []
        return self._normalize(await self.board.around(member, distance, fill_borders))

    async def count(self) -> int:
        return await self.board.count()

    async def clear(self) -> None:
        # Pointer keys are only discoverable through the members that reference them.
        removed = await self._clear_script(keys=[self.path])
        logger.debug("Cleared %s (%s entries)", self.path, removed)

    def _normalize(self, entries: Sequence[Entry]) -> list[Entry]:
        for entry in entries:
            entry.id = self.decode(entry.id)
        return list(entries)
