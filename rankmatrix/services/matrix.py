"""A grid of time-ordered leaderboards indexed by (dimension, feature).

Every dimension also gets a synthetic ``allMetrics`` feature: a multi-metric
leaderboard over the dimension's other features, recomputed for an entity
each time the matrix writes scores for it.

Multi-feature reads run as a single Redis script so that a row's scores all
come from the same instant.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any

from pydantic import ValidationError
from redis.asyncio import Redis

from rankmatrix.clock import Clock, utc_now
from rankmatrix.errors import ConfigurationError
from rankmatrix.models.options import ALL_METRICS, FeatureDefinition, MatrixOptions
from rankmatrix.services.composite import MultimetricLeaderboard
from rankmatrix.services.periodic import MultimetricPeriodicLeaderboard, PeriodicLeaderboard
from rankmatrix.services.timestamped import TimestampedLeaderboard
from rankmatrix.storage import scripts

logger = logging.getLogger(__name__)

Write = Callable[[TimestampedLeaderboard, str, float], Awaitable[Any]]


@dataclass(slots=True)
class MatrixEntry:
    id: str
    rank: int
    scores: dict[str, float | None]

    def to_row(self) -> dict[str, Any]:
        return {"id": self.id, "rank": self.rank, **self.scores}


def _to_score(value: str | None) -> float | None:
    return None if value is None else float(value)


class LeaderboardMatrix:
    def __init__(
        self,
        redis_client: Redis,
        options: MatrixOptions | Mapping[str, Any],
        now: Clock = utc_now,
    ):
        if not isinstance(options, MatrixOptions):
            try:
                options = MatrixOptions.model_validate(options)
            except ValidationError as exc:
                raise ConfigurationError(
                    "Invalid leaderboard matrix options",
                    details={"errors": exc.errors(include_url=False, include_context=False)},
                ) from exc
        self.redis = redis_client
        self.options = options
        self.now = now
        self.dimensions = [dim.name for dim in options.dimensions]
        self.metrics = [feat.name for feat in options.features]
        self.features = [*self.metrics, ALL_METRICS]
        self._cells: dict[tuple[int, int], PeriodicLeaderboard] = {}
        self._retrieve_entry = redis_client.register_script(scripts.RETRIEVE_ENTRY)
        self._retrieve_entries = redis_client.register_script(scripts.RETRIEVE_ENTRIES)
        self._around_entries = redis_client.register_script(scripts.AROUND_ENTRIES)
        logger.info(
            "Leaderboard matrix %s: dimensions=%s features=%s",
            options.path,
            self.dimensions,
            self.metrics,
        )

    def get(
        self,
        dimension: str,
        feature: str,
        time: datetime | None = None,
    ) -> TimestampedLeaderboard | MultimetricLeaderboard | None:
        """Return the cell's window for ``time`` (default: now), or None for unknown names."""
        if dimension not in self.dimensions or feature not in self.features:
            return None
        cell = self._cell(self.dimensions.index(dimension), self.features.index(feature))
        return cell.get_current() if time is None else cell.get(time)

    async def add(
        self,
        id: str,
        feature_scores: Mapping[str, float],
        dimensions: Iterable[str] | None = None,
    ) -> None:
        """Set scores in several cells, e.g. ``add("id", {"wins": 99, "kills": 48}, ["global"])``.

        Unknown dimension or feature names are ignored. Without ``dimensions``
        every dimension is written.
        """
        await self._fan_out(TimestampedLeaderboard.add, id, feature_scores, dimensions)

    async def incr(
        self,
        id: str,
        feature_scores: Mapping[str, float],
        dimensions: Iterable[str] | None = None,
    ) -> None:
        await self._fan_out(TimestampedLeaderboard.incr, id, feature_scores, dimensions)

    async def improve(
        self,
        id: str,
        feature_scores: Mapping[str, float],
        dimensions: Iterable[str] | None = None,
    ) -> None:
        await self._fan_out(TimestampedLeaderboard.improve, id, feature_scores, dimensions)

    async def peek(
        self,
        id: str,
        dimension: str,
        feature: str | None = None,
        time: datetime | None = None,
    ) -> MatrixEntry | None:
        """Retrieve an entity's scores in a dimension.

        Only pass ``feature`` when the row should carry the entity's rank in it;
        otherwise the rank is 0.
        """
        if feature is not None:
            rows = await self.around(dimension, feature, id, 0, time=time)
            return rows[0] if rows else None
        if dimension not in self.dimensions:
            return None
        scores = await self._retrieve_entry(keys=self._metric_paths(dimension, time), args=[id])
        if all(score is None for score in scores):
            return None
        return MatrixEntry(
            id=id,
            rank=0,
            scores={name: _to_score(score) for name, score in zip(self.metrics, scores)},
        )

    async def list(
        self,
        dimension: str,
        feature: str,
        low: int,
        high: int,
        time: datetime | None = None,
    ) -> list[MatrixEntry]:
        """Rows ranked between ``low`` and ``high`` (one-based, inclusive) by ``feature``."""
        lb = self.get(dimension, feature, time)
        if lb is None:
            return []
        low = max(low, 1)
        if high < low:
            return []
        result = await self._retrieve_entries(
            keys=[lb.path, *self._metric_paths(dimension, time)],
            args=[scripts.flag(lb.low_to_high), low - 1, high - 1],
        )
        return self._parse_entries(result, low)

    async def top(
        self,
        dimension: str,
        feature: str,
        max: int = 10,
        time: datetime | None = None,
    ) -> list[MatrixEntry]:
        return await self.list(dimension, feature, 1, max, time=time)

    async def around(
        self,
        dimension: str,
        feature: str,
        id: str,
        distance: int,
        fill_borders: bool = False,
        time: datetime | None = None,
    ) -> list[MatrixEntry]:
        lb = self.get(dimension, feature, time)
        if lb is None or distance < 0:
            return []
        first, result = await self._around_entries(
            keys=[lb.path, *self._metric_paths(dimension, time)],
            args=[scripts.flag(lb.low_to_high), id, distance, scripts.flag(fill_borders)],
        )
        if first < 0:
            return []
        return self._parse_entries(result, first + 1)

    async def clear(self, time: datetime | None = None) -> None:
        for dimension in self.dimensions:
            for feature in self.features:
                await self.get(dimension, feature, time).clear()
        self._cells.clear()
        logger.info("Cleared leaderboard matrix %s", self.options.path)

    def _cell(self, dim_index: int, feat_index: int) -> PeriodicLeaderboard:
        cell = self._cells.get((dim_index, feat_index))
        if cell is not None:
            return cell
        dimension = self.options.dimensions[dim_index]
        path = f"{self.options.path}:{dimension.name}:{self.features[feat_index]}"
        if self.features[feat_index] == ALL_METRICS:
            cell = MultimetricPeriodicLeaderboard(
                self.redis,
                path,
                [self._cell(dim_index, i) for i in range(len(self.metrics))],
                self.options.max_users,
                time_frame=dimension.time_frame,
                now=self.now,
            )
        else:
            cell = PeriodicLeaderboard(
                path,
                partial(self._build_feature, self.options.features[feat_index]),
                time_frame=dimension.time_frame,
                now=self.now,
            )
        self._cells[(dim_index, feat_index)] = cell
        return cell

    def _build_feature(self, feature: FeatureDefinition, path: str, _: datetime) -> TimestampedLeaderboard:
        return TimestampedLeaderboard(
            self.redis,
            path,
            low_to_high=feature.low_to_high,
            earlier_to_later=feature.earlier_to_later,
            now=self.now,
        )

    def _select_dimensions(self, dimensions: Iterable[str] | None) -> list[str]:
        requested = list(dimensions or [])
        if not requested:
            return list(self.dimensions)
        return [name for name in requested if name in self.dimensions]

    def _metric_paths(self, dimension: str, time: datetime | None) -> list[str]:
        return [self.get(dimension, name, time).path for name in self.metrics]

    async def _fan_out(
        self,
        write: Write,
        id: str,
        feature_scores: Mapping[str, float],
        dimensions: Iterable[str] | None,
    ) -> None:
        # One window per call, even if a bucket boundary passes mid-write.
        time = self.now()
        for dimension in self._select_dimensions(dimensions):
            writes = [
                write(self.get(dimension, feature, time), id, score)
                for feature, score in feature_scores.items()
                if feature in self.metrics
            ]
            if not writes:
                continue
            await asyncio.gather(*writes)
            await self.get(dimension, ALL_METRICS, time).update_rank(id)

    def _parse_entries(self, result: list[Any], low: int) -> list[MatrixEntry]:
        ids, columns = result
        return [
            MatrixEntry(
                id=id,
                rank=low + index,
                scores={name: _to_score(columns[f][index]) for f, name in enumerate(self.metrics)},
            )
            for index, id in enumerate(ids)
        ]
