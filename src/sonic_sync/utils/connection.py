"""Connection utilities: retry policy for transport setup and Redis helpers.

Only transport establishment (the SSH dial) is retried. Database reads and
writes are single-shot; callers decide whether to try again.
"""
import logging
from typing import Callable, Protocol, TypeVar

import redis.asyncio as aioredis
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Common network exceptions to retry on
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    OSError,
    EOFError,
)

# SCAN page size hints; ASIC_DB keyspaces are much larger.
SCAN_COUNT = 100
ASIC_SCAN_COUNT = 1000


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable:
    """Retry transient network failures with exponential backoff.

    Meant for transport setup only. tenacity picks the async or blocking
    strategy from ``func`` itself, and the last exception is re-raised once
    ``max_attempts`` is used up.
    """
    policy = retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        return policy(func)

    return decorator


class RedisFactory(Protocol):
    """Builds a client for one Redis database on ``host:port``."""

    def __call__(self, host: str, port: int, db: int) -> aioredis.Redis: ...


def open_redis(host: str, port: int, db: int, timeout: float = 30) -> aioredis.Redis:
    """Default factory: a string-decoding asyncio Redis client."""
    return aioredis.Redis(
        host=host,
        port=port,
        db=db,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )


async def scan_keys(client: aioredis.Redis, pattern: str, count: int = SCAN_COUNT) -> list[str]:
    """Collect keys matching ``pattern`` with cursor-based SCAN.

    KEYS would block a shared Redis on large keyspaces; SCAN pages through it.
    The count is a per-page hint, not a limit.
    """
    keys: list[str] = []
    cursor = 0
    while True:
        cursor, batch = await client.scan(cursor=cursor, match=pattern, count=count)
        keys.extend(batch)
        if cursor == 0:
            break
    return keys


async def close_redis(client: aioredis.Redis, name: str = "") -> None:
    """Close a client, logging instead of raising on teardown errors."""
    try:
        await client.aclose()
    except Exception as e:
        logger.warning(f"Error closing redis connection {name}: {e}")
