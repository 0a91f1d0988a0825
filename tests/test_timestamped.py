from __future__ import annotations

import pytest

from rankmatrix.services.timestamped import (
    PipelinedTimestampedLeaderboard,
    TimestampedLeaderboard,
    recency_stamp,
)

VARIANTS = [TimestampedLeaderboard, PipelinedTimestampedLeaderboard]


@pytest.fixture(params=VARIANTS, ids=["scripted", "pipelined"])
def variant(request):
    return request.param


def members_of(sync_redis, path: str, entity_id: str) -> list[str]:
    return [m for m in sync_redis.zrange(path, 0, -1) if m.split(":", 1)[1] == entity_id]


def assert_pointer_consistent(sync_redis, lb, entity_id: str) -> None:
    pointer = sync_redis.get(lb.pointer_key(entity_id))
    members = members_of(sync_redis, lb.path, entity_id)
    if pointer is None:
        assert members == []
    else:
        assert members == [pointer]


def test_recency_stamp_is_fixed_width():
    assert recency_stamp(1_704_103_200_000, True) == "1704103200000"
    assert recency_stamp(1_704_103_200_000, False) == "8295896800000"
    assert recency_stamp(5, True) == "0000000000005"


@pytest.mark.parametrize("low_to_high", [False, True])
async def test_earlier_submission_wins_ties(redis, namespace, clock, variant, low_to_high):
    lb = variant(redis, f"{namespace}:ts", low_to_high=low_to_high, now=clock)
    await lb.add("first", 10)
    clock.advance(milliseconds=1)
    await lb.add("second", 10)

    assert [entry.id for entry in await lb.list(1, 10)] == ["first", "second"]


@pytest.mark.parametrize("low_to_high", [False, True])
async def test_later_submission_wins_ties(redis, namespace, clock, variant, low_to_high):
    lb = variant(redis, f"{namespace}:ts", low_to_high=low_to_high, earlier_to_later=False, now=clock)
    await lb.add("first", 10)
    clock.advance(milliseconds=1)
    await lb.add("second", 10)

    assert [entry.id for entry in await lb.list(1, 10)] == ["second", "first"]


async def test_add_replaces_previous_member(redis, sync_redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    await lb.add("alice", 10)
    clock.advance(seconds=1)
    await lb.add("alice", 4)

    assert await lb.count() == 1
    assert await lb.score("alice") == 4.0
    assert_pointer_consistent(sync_redis, lb, "alice")


async def test_improve(redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    assert await lb.improve("alice", 10) is True
    clock.advance(seconds=1)
    assert await lb.improve("alice", 5) is False
    assert await lb.improve("alice", 10) is False
    assert await lb.score("alice") == 10.0
    assert await lb.improve("alice", 15) is True
    assert await lb.score("alice") == 15.0
    assert await lb.count() == 1


async def test_improve_low_to_high(redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", low_to_high=True, now=clock)
    await lb.add("alice", 10)
    assert await lb.improve("alice", 12) is False
    assert await lb.improve("alice", 7) is True
    assert await lb.score("alice") == 7.0


async def test_incr_returns_absolute_score(redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    assert await lb.incr("alice", 5) == 5.0
    clock.advance(milliseconds=10)
    assert await lb.incr("alice", 2.5) == 7.5
    assert await lb.score("alice") == 7.5
    assert await lb.count() == 1


async def test_incr_keeps_full_precision(redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    await lb.add("alice", 123456789012345)
    clock.advance(milliseconds=1)

    assert await lb.incr("alice", 1) == 123456789012346.0
    assert await lb.score("alice") == 123456789012346.0
    assert await lb.count() == 1


async def test_remove(redis, sync_redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    await lb.add("alice", 10)
    await lb.remove("alice")
    await lb.remove("ghost")

    assert await lb.score("alice") is None
    assert await lb.rank("alice") is None
    assert await lb.peek("alice") is None
    assert await lb.count() == 0
    assert sync_redis.get(lb.pointer_key("alice")) is None


async def test_reads_return_plain_ids(redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    await lb.add("alice", 100)
    await lb.add("bob", 150)
    await lb.add("cara:with:colons", 120)

    entry = await lb.peek("cara:with:colons")
    assert (entry.id, entry.score, entry.rank) == ("cara:with:colons", 120.0, 2)
    assert await lb.rank("bob") == 1
    assert [e.id for e in await lb.top(3)] == ["bob", "cara:with:colons", "alice"]
    assert [e.id for e in await lb.around("alice", 1)] == ["cara:with:colons", "alice"]
    assert [e.id for e in await lb.around("alice", 1, fill_borders=True)] == [
        "bob",
        "cara:with:colons",
        "alice",
    ]
    assert await lb.around("ghost", 1) == []


async def test_pointer_consistency_after_mixed_operations(redis, sync_redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    operations = [
        ("add", "alice", 10),
        ("incr", "alice", 3),
        ("improve", "alice", 2),
        ("improve", "alice", 20),
        ("add", "bob", 5),
        ("remove", "bob", None),
        ("incr", "bob", 1),
        ("remove", "alice", None),
        ("improve", "alice", 1),
    ]
    for name, entity_id, value in operations:
        clock.advance(milliseconds=7)
        if value is None:
            await getattr(lb, name)(entity_id)
        else:
            await getattr(lb, name)(entity_id, value)
        assert_pointer_consistent(sync_redis, lb, "alice")
        assert_pointer_consistent(sync_redis, lb, "bob")

    assert await lb.score("alice") == 1.0
    assert await lb.score("bob") == 1.0


async def test_clear_removes_pointers(redis, sync_redis, namespace, clock, variant):
    lb = variant(redis, f"{namespace}:ts", now=clock)
    await lb.add("alice", 10)
    await lb.add("bob", 20)

    await lb.clear()

    assert await lb.count() == 0
    assert list(sync_redis.scan_iter(match=f"{namespace}:ts*")) == []
