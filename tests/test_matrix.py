from __future__ import annotations

from datetime import datetime, timezone

import pytest

from rankmatrix.errors import ConfigurationError, PreconditionFailure
from rankmatrix.models.options import ALL_METRICS
from rankmatrix.services.composite import MultimetricLeaderboard
from rankmatrix.services.matrix import LeaderboardMatrix
from rankmatrix.services.timestamped import TimestampedLeaderboard

JANUARY = datetime(2024, 1, 15, tzinfo=timezone.utc)


@pytest.fixture
def matrix(redis, matrix_options, clock):
    return LeaderboardMatrix(redis, matrix_options, now=clock)


async def seed(matrix, clock):
    for entity_id, wins, losses in [("bob", 20, 1), ("alice", 10, 2), ("cara", 5, 3)]:
        clock.advance(milliseconds=1)
        await matrix.add(entity_id, {"wins": wins, "losses": losses})


def ids(rows):
    return [row.id for row in rows]


async def test_peek_without_feature_reads_every_feature(redis, namespace, clock):
    matrix = LeaderboardMatrix(
        redis,
        {
            "path": namespace,
            "dimensions": [{"name": "global"}],
            "features": [{"name": "wins"}, {"name": "losses"}],
            "max_users": 1000,
        },
        now=clock,
    )
    await matrix.add("alice", {"wins": 10, "losses": 2})

    entry = await matrix.peek("alice", "global")
    assert entry.to_row() == {"id": "alice", "rank": 0, "wins": 10.0, "losses": 2.0}


async def test_peek_missing_entity_or_dimension(matrix, clock):
    await seed(matrix, clock)
    assert await matrix.peek("ghost", "global") is None
    assert await matrix.peek("alice", "nowhere") is None
    assert await matrix.peek("ghost", "global", "wins") is None


async def test_peek_with_feature_carries_rank(matrix, clock):
    await seed(matrix, clock)

    entry = await matrix.peek("cara", "global", "wins")
    assert entry.to_row() == {"id": "cara", "rank": 3, "wins": 5.0, "losses": 3.0}
    entry = await matrix.peek("cara", "global", ALL_METRICS)
    assert entry.rank == 3


async def test_get_resolves_cells(matrix, namespace):
    wins = matrix.get("global", "wins")
    assert isinstance(wins, TimestampedLeaderboard)
    assert wins.path == f"{namespace}:global:wins:all"
    assert matrix.get("global", "wins") is wins

    combined = matrix.get("global", ALL_METRICS)
    assert isinstance(combined, MultimetricLeaderboard)
    assert [lb.path for lb in combined.leaderboards] == [
        f"{namespace}:global:wins:all",
        f"{namespace}:global:losses:all",
    ]
    assert matrix.get("monthly", "losses").path == f"{namespace}:monthly:losses:2024-01"
    assert matrix.get("global", "nope") is None
    assert matrix.get("nowhere", "wins") is None


async def test_list_ranks_by_one_feature_with_every_score(matrix, clock):
    await seed(matrix, clock)

    rows = await matrix.list("global", "wins", 1, 10)
    assert [row.to_row() for row in rows] == [
        {"id": "bob", "rank": 1, "wins": 20.0, "losses": 1.0},
        {"id": "alice", "rank": 2, "wins": 10.0, "losses": 2.0},
        {"id": "cara", "rank": 3, "wins": 5.0, "losses": 3.0},
    ]
    assert ids(await matrix.list("global", "losses", 2, 3)) == ["alice", "cara"]
    assert ids(await matrix.top("global", ALL_METRICS)) == ["bob", "alice", "cara"]
    assert await matrix.list("global", "wins", 3, 2) == []
    assert await matrix.list("global", "nope", 1, 10) == []


async def test_list_reports_missing_scores(matrix, clock):
    await seed(matrix, clock)
    with pytest.raises(PreconditionFailure):
        await matrix.add("dave", {"wins": 1})

    rows = await matrix.list("global", "wins", 4, 4)
    assert [row.to_row() for row in rows] == [{"id": "dave", "rank": 4, "wins": 1.0, "losses": None}]


async def test_around(matrix, clock):
    await seed(matrix, clock)

    assert ids(await matrix.around("global", "wins", "cara", 1)) == ["alice", "cara"]
    rows = await matrix.around("global", "wins", "cara", 1, fill_borders=True)
    assert ids(rows) == ["bob", "alice", "cara"]
    assert [row.rank for row in rows] == [1, 2, 3]
    assert await matrix.around("global", "wins", "ghost", 1) == []
    assert await matrix.around("global", "wins", "cara", -1) == []


async def test_improve_and_incr_update_combined_ranking(matrix, clock):
    await seed(matrix, clock)

    clock.advance(milliseconds=1)
    await matrix.improve("bob", {"wins": 15})
    assert (await matrix.peek("bob", "global")).scores["wins"] == 20.0

    clock.advance(milliseconds=1)
    await matrix.incr("cara", {"wins": 100})
    cara = await matrix.peek("cara", "global", "wins")
    assert (cara.rank, cara.scores["wins"]) == (1, 105.0)
    assert ids(await matrix.top("global", ALL_METRICS)) == ["bob", "cara", "alice"]


async def test_writes_only_touch_requested_dimensions(matrix, clock):
    await matrix.add("alice", {"wins": 3, "losses": 1, "unknown": 7}, ["monthly", "nowhere"])

    assert await matrix.peek("alice", "global") is None
    assert (await matrix.peek("alice", "monthly")).scores == {"wins": 3.0, "losses": 1.0}


async def test_periodic_dimension_rolls_over(matrix, clock):
    await seed(matrix, clock)
    clock.advance(days=31)

    assert await matrix.peek("alice", "monthly") is None
    assert (await matrix.peek("alice", "global")).scores["wins"] == 10.0
    january = await matrix.peek("alice", "monthly", "wins", time=JANUARY)
    assert january.rank == 2
    assert ids(await matrix.list("monthly", ALL_METRICS, 1, 3, time=JANUARY)) == ["bob", "alice", "cara"]


async def test_clear_empties_every_cell(matrix, clock, sync_redis, namespace):
    await seed(matrix, clock)

    await matrix.clear()

    assert await matrix.list("global", "wins", 1, 10) == []
    assert await matrix.peek("alice", "global") is None
    assert list(sync_redis.scan_iter(match=f"{namespace}*")) == []


@pytest.mark.parametrize(
    "options",
    [
        {"dimensions": [], "features": [{"name": "wins"}], "max_users": 10},
        {"dimensions": [{"name": "global"}], "features": [], "max_users": 10},
        {"dimensions": [{"name": "global"}], "features": [{"name": "wins"}]},
        {"dimensions": [{"name": "global"}], "features": [{"name": ALL_METRICS}], "max_users": 10},
        {"dimensions": [{"name": "global"}], "features": [{"name": "a"}, {"name": "a"}], "max_users": 10},
        {"dimensions": [{"name": "global", "time_frame": "decade"}], "features": [{"name": "a"}], "max_users": 10},
    ],
)
async def test_invalid_options(redis, options):
    with pytest.raises(ConfigurationError):
        LeaderboardMatrix(redis, options)


class BoundaryClock:
    """Returns the first instant once, then the second one forever."""

    def __init__(self, first: datetime, then: datetime):
        self.instants = [first, then]

    def __call__(self) -> datetime:
        if len(self.instants) > 1:
            return self.instants.pop(0)
        return self.instants[0]


async def test_writes_stay_in_one_window_across_a_boundary(redis, matrix_options):
    january = datetime(2024, 1, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)
    february = datetime(2024, 2, 1, tzinfo=timezone.utc)
    matrix = LeaderboardMatrix(redis, matrix_options, now=BoundaryClock(january, february))

    await matrix.add("alice", {"wins": 10, "losses": 2}, ["monthly"])

    entry = await matrix.peek("alice", "monthly", ALL_METRICS, time=january)
    assert entry.to_row() == {"id": "alice", "rank": 1, "wins": 10.0, "losses": 2.0}
    assert await matrix.peek("alice", "monthly", time=february) is None
