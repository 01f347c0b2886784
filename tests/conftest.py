"""Shared fixtures: an in-memory Redis server standing in for a switch."""
import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from sonic_sync.types import APPL_DB, ASIC_DB, CONFIG_DB, STATE_DB


@pytest.fixture
def fake_server():
    """One server holds every database, like the Redis inside a switch."""
    return FakeServer()


@pytest.fixture
def redis_factory(fake_server):
    """Factory with the (host, port, db) signature devices expect."""
    def factory(host, port, db):
        return FakeRedis(server=fake_server, db=db, decode_responses=True)
    return factory


@pytest.fixture
def config_redis(redis_factory):
    return redis_factory("127.0.0.1", 6379, CONFIG_DB)


@pytest.fixture
def state_redis(redis_factory):
    return redis_factory("127.0.0.1", 6379, STATE_DB)


@pytest.fixture
def appl_redis(redis_factory):
    return redis_factory("127.0.0.1", 6379, APPL_DB)


@pytest.fixture
def asic_redis(redis_factory):
    return redis_factory("127.0.0.1", 6379, ASIC_DB)
