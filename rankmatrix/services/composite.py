"""Multi-metric leaderboards ranked by the ranks of several sub-leaderboards.

An entity's composite key is the tuple of its one-based ranks in every
sub-leaderboard, followed by a recency component and the entity id. The key is
serialized with fixed-width fields so that the byte order Redis uses for
members with equal scores reproduces the tuple order:

    <rank_1>-<rank_2>-...-<rank_k>-<13-digit recency>:<entity-id>

Every member is stored with score 0, so the sorted set is ordered by member
alone and the smallest key ranks first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from redis.asyncio import Redis

from rankmatrix.clock import Clock, epoch_millis, utc_now
from rankmatrix.errors import (
    ConfigurationError,
    NotSupportedError,
    PreconditionFailure,
    RankOverflowError,
)
from rankmatrix.services.leaderboard import Ranking
from rankmatrix.services.pointer import PointerLeaderboard
from rankmatrix.services.timestamped import RECENCY_DIGITS, recency_value
from rankmatrix.storage import scripts

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True, slots=True)
class CompositeKey:
    ranks: tuple[int, ...]
    recency: int
    entity_id: str


class CompositeCodec:
    """Fixed-width serialization of ``CompositeKey`` values.

    The rank width is the number of digits of ``max_users - 1``, which equals
    ``ceil(log10(max_users))`` for every ``max_users >= 2``.
    """

    def __init__(self, metrics: int, max_users: int):
        if metrics < 1:
            raise ConfigurationError(
                "A composite key needs at least one metric",
                details={"metrics": metrics},
            )
        if max_users < 2:
            raise ConfigurationError(
                "max_users must be at least 2",
                details={"max_users": max_users},
            )
        self.metrics = metrics
        self.width = len(str(max_users - 1))

    @property
    def prefix_length(self) -> int:
        return self.metrics * (self.width + 1) + RECENCY_DIGITS + 1

    def encode(self, key: CompositeKey) -> str:
        if len(key.ranks) != self.metrics:
            raise ConfigurationError(
                f"Expected {self.metrics} ranks, got {len(key.ranks)}",
                details={"ranks": list(key.ranks)},
            )
        limit = 10**self.width
        for rank in key.ranks:
            if not 0 <= rank < limit:
                raise RankOverflowError(rank, self.width)
        ranks = "".join(f"{rank:0{self.width}d}-" for rank in key.ranks)
        return f"{ranks}{key.recency:0{RECENCY_DIGITS}d}:{key.entity_id}"

    def decode(self, member: str) -> str:
        return member[self.prefix_length:]

    def decode_key(self, member: str) -> CompositeKey:
        head, sep, entity_id = member.partition(":")
        fields = head.split("-")
        if not sep or len(head) + 1 != self.prefix_length or len(fields) != self.metrics + 1:
            raise ValueError(f"Not a composite member: {member!r}")
        return CompositeKey(
            ranks=tuple(int(field) for field in fields[:-1]),
            recency=int(fields[-1]),
            entity_id=entity_id,
        )


class MultimetricLeaderboard(PointerLeaderboard):
    """Derived leaderboard: write to the sub-leaderboards, then call ``update_rank``."""

    def __init__(
        self,
        redis_client: Redis,
        path: str,
        leaderboards: Sequence[Ranking],
        max_users: int | None,
        earlier_to_later: bool = False,
        now: Clock = utc_now,
    ):
        if not leaderboards:
            raise ConfigurationError(
                "A multi-metric leaderboard needs at least one sub-leaderboard",
                details={"path": path},
            )
        if max_users is None:
            raise ConfigurationError(
                "A multi-metric leaderboard needs max_users",
                details={"path": path},
            )
        super().__init__(redis_client, path, low_to_high=True)
        self.leaderboards = list(leaderboards)
        self.codec = CompositeCodec(len(self.leaderboards), max_users)
        self.earlier_to_later = earlier_to_later
        self.now = now
        self._replace_script = redis_client.register_script(scripts.COMPOSITE_REPLACE)

    def decode(self, member: str) -> str:
        return self.codec.decode(member)

    async def composite_key(self, id: str) -> CompositeKey:
        ranks = await asyncio.gather(*(lb.rank(id) for lb in self.leaderboards))
        missing = [lb.path for lb, rank in zip(self.leaderboards, ranks) if rank is None]
        if missing:
            logger.warning("Composite rank for %r skipped, missing from %s", id, missing)
            raise PreconditionFailure(id, missing)
        recency = recency_value(epoch_millis(self.now()), self.earlier_to_later)
        return CompositeKey(ranks=tuple(ranks), recency=recency, entity_id=id)

    async def update_rank(self, id: str) -> bool:
        """Store the entity's current composite key unless it would rank worse.

        Returns whether a new member was written.
        """
        member = self.codec.encode(await self.composite_key(id))
        while True:
            previous = await self.current_member(id)
            if previous is not None and not member < previous:
                logger.debug("Kept %s over %s in %s", previous, member, self.path)
                return False
            committed = await self._replace_script(
                keys=[self.path, self.pointer_key(id)],
                args=[previous or "", member],
            )
            if committed == 1:
                logger.debug("Replaced %s with %s in %s", previous, member, self.path)
                return True

    async def add(self, id: str, score: float) -> None:
        raise NotSupportedError("add", self.path)

    async def improve(self, id: str, score: float) -> bool:
        raise NotSupportedError("improve", self.path)

    async def incr(self, id: str, amount: float) -> float:
        raise NotSupportedError("incr", self.path)

    async def remove(self, id: str) -> None:
        raise NotSupportedError("remove", self.path)
