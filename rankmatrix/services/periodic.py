"""Leaderboards split into time windows.

Each window lives at ``<path>:<bucket key>``, where the bucket key is derived
from a time frame and a point in time:

    all-time  all
    yearly    2024
    monthly   2024-01
    weekly    2024-w01        (ISO year and week)
    daily     2024-01-01
    hourly    2024-01-01-10
    minute    2024-01-01-10-00

Keys are formatted in the time zone of the datetime they are given.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Generic, Literal, TypeVar, get_args

from redis.asyncio import Redis

from rankmatrix.clock import Clock, utc_now
from rankmatrix.errors import ConfigurationError
from rankmatrix.services.composite import MultimetricLeaderboard

logger = logging.getLogger(__name__)

TimeFrame = Literal["minute", "hourly", "daily", "weekly", "monthly", "yearly", "all-time"]
TIME_FRAMES: tuple[str, ...] = get_args(TimeFrame)

ALL_TIME_KEY = "all"

_FORMATS = {
    "yearly": "%Y",
    "monthly": "%Y-%m",
    "daily": "%Y-%m-%d",
    "hourly": "%Y-%m-%d-%H",
    "minute": "%Y-%m-%d-%H-%M",
}

L = TypeVar("L")


def bucket_key(time_frame: str, time: datetime) -> str:
    if time_frame == "all-time":
        return ALL_TIME_KEY
    if time_frame == "weekly":
        year, week, _ = time.isocalendar()
        return f"{year:04d}-w{week:02d}"
    try:
        return time.strftime(_FORMATS[time_frame])
    except KeyError:
        raise ConfigurationError(
            f"Unknown time frame {time_frame!r}",
            details={"time_frame": time_frame, "allowed": list(TIME_FRAMES)},
        ) from None


class WindowCache(Generic[L]):
    """Holds the leaderboard of the most recently requested window.

    Uncached until the first lookup; afterwards a lookup with the cached key
    returns the cached instance and any other key replaces it.
    """

    def __init__(self) -> None:
        self._windows: dict[str, L] = {}

    @property
    def key(self) -> str | None:
        return next(iter(self._windows), None)

    def lookup(self, key: str, build: Callable[[], L]) -> L:
        window = self._windows.get(key)
        if window is None:
            if self._windows:
                logger.debug("Window rolled over from %s to %s", self.key, key)
            window = build()
            self._windows = {key: window}
        return window

    def evict(self) -> None:
        self._windows = {}


class PeriodicLeaderboard(Generic[L]):
    """Factory of per-window leaderboards.

    ``build`` receives the window path and the point in time the window was
    requested for.
    """

    def __init__(
        self,
        path: str,
        build: Callable[[str, datetime], L],
        time_frame: TimeFrame = "all-time",
        now: Clock = utc_now,
    ):
        if time_frame not in TIME_FRAMES:
            raise ConfigurationError(
                f"Unknown time frame {time_frame!r}",
                details={"time_frame": time_frame, "allowed": list(TIME_FRAMES)},
            )
        self.path = path
        self.time_frame = time_frame
        self.now = now
        self._build = build
        self._current: WindowCache[L] = WindowCache()

    def key(self, time: datetime) -> str:
        return bucket_key(self.time_frame, time)

    def window_path(self, time: datetime) -> str:
        return f"{self.path}:{self.key(time)}"

    def get(self, time: datetime) -> L:
        return self._build(self.window_path(time), time)

    def get_current(self) -> L:
        now = self.now()
        path = self.window_path(now)
        return self._current.lookup(path, lambda: self._build(path, now))

    async def clear(self, time: datetime) -> None:
        await self.get(time).clear()

    async def clear_current(self) -> None:
        await self.get_current().clear()
        self._current.evict()


class MultimetricPeriodicLeaderboard(PeriodicLeaderboard[MultimetricLeaderboard]):
    """Periodic composite leaderboard over periodic sub-leaderboards.

    The window for a time ranks entities by their ranks in the matching
    windows of every sub-leaderboard.
    """

    def __init__(
        self,
        redis_client: Redis,
        path: str,
        leaderboards: Sequence[PeriodicLeaderboard],
        max_users: int | None,
        time_frame: TimeFrame = "all-time",
        now: Clock = utc_now,
        earlier_to_later: bool = False,
    ):
        if not leaderboards:
            raise ConfigurationError(
                "The sub-leaderboards must be provided",
                details={"path": path},
            )
        self.redis = redis_client
        self.leaderboards = list(leaderboards)
        self.max_users = max_users
        self.earlier_to_later = earlier_to_later
        super().__init__(path, self._build_window, time_frame=time_frame, now=now)

    def _build_window(self, path: str, time: datetime) -> MultimetricLeaderboard:
        return MultimetricLeaderboard(
            self.redis,
            path,
            [lb.get(time) for lb in self.leaderboards],
            self.max_users,
            earlier_to_later=self.earlier_to_later,
            now=self.now,
        )
