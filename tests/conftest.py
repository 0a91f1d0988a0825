from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient
from redis import Redis

from rankmatrix.config import Settings
from rankmatrix.main import create_app
from rankmatrix.models.options import MatrixOptions
from rankmatrix.storage.redis import create_redis_client

# Tests run against a real server when REDIS_URL is set, otherwise against fakeredis.
REDIS_URL = os.getenv("REDIS_URL")


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def async_client(server: fakeredis.FakeServer | None):
    if server is None:
        return create_redis_client(REDIS_URL)
    return fakeredis.FakeAsyncRedis(server=server, decode_responses=True)


@pytest.fixture()
def redis_server() -> fakeredis.FakeServer | None:
    return None if REDIS_URL else fakeredis.FakeServer()


@pytest.fixture()
def namespace() -> str:
    return f"test_{uuid.uuid4().hex}"


@pytest.fixture()
def sync_redis(redis_server, namespace: str):
    if redis_server is None:
        client = Redis.from_url(REDIS_URL, decode_responses=True)
    else:
        client = fakeredis.FakeRedis(server=redis_server, decode_responses=True)

    yield client

    for key in client.scan_iter(match=f"{namespace}*"):
        client.delete(key)


@pytest.fixture()
async def redis(redis_server, sync_redis):
    client = async_client(redis_server)
    yield client
    await client.aclose()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def matrix_options(namespace: str) -> MatrixOptions:
    return MatrixOptions(
        path=namespace,
        dimensions=[
            {"name": "global", "time_frame": "all-time"},
            {"name": "monthly", "time_frame": "monthly"},
        ],
        features=[
            {"name": "wins", "low_to_high": False},
            {"name": "losses", "low_to_high": True},
        ],
        max_users=1000,
    )


@pytest.fixture()
def client(redis_server, sync_redis, matrix_options: MatrixOptions):
    app = create_app(Settings(matrix=matrix_options), redis_client=async_client(redis_server))

    with TestClient(app) as test_client:
        yield test_client
