"""Utility modules for connection management and helpers."""
from .connection import with_retry, open_redis, scan_keys, close_redis, RedisFactory
from .logging_config import (
    LogSettings,
    setup_logging,
    timed,
    timed_section,
    perf_logger,
    device_logger,
)
from .rwlock import RWLock

__all__ = [
    "with_retry",
    "open_redis",
    "scan_keys",
    "close_redis",
    "RedisFactory",
    "LogSettings",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
    "device_logger",
    "RWLock",
]
