"""Logging setup and timing helpers for sonic-sync.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed by the application through :func:`setup_logging`. Timing lines for
connect, load, apply and verify go to the ``sonic_sync.perf`` logger and its
own rotating file so they can be grepped without the rest of the noise.

Environment variables:
    SONIC_SYNC_LOG_LEVEL     console level (default INFO)
    SONIC_SYNC_LOG_FILE      main log path (default ~/.sonic-sync/sonic-sync.log)
    SONIC_SYNC_LOG_MAX_SIZE  size per file in MB before rotation (default 10)
    SONIC_SYNC_LOG_BACKUPS   rotated files kept (default 5)
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

ROOT_LOGGER = "sonic_sync"
PERF_LOGGER = "sonic_sync.perf"

perf_logger = logging.getLogger(PERF_LOGGER)

_LINE_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-28s | %(levelname)-7s | %(message)s"
_PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class LogSettings:
    level: int = logging.INFO
    log_file: Path = Path.home() / ".sonic-sync" / "sonic-sync.log"
    max_size_mb: int = 10
    backups: int = 5

    @classmethod
    def from_env(cls) -> "LogSettings":
        settings = cls()
        level = os.environ.get("SONIC_SYNC_LOG_LEVEL", "INFO").upper()
        settings.level = getattr(logging, level, logging.INFO)
        if os.environ.get("SONIC_SYNC_LOG_FILE"):
            settings.log_file = Path(os.environ["SONIC_SYNC_LOG_FILE"])
        settings.max_size_mb = int(os.environ.get("SONIC_SYNC_LOG_MAX_SIZE", settings.max_size_mb))
        settings.backups = int(os.environ.get("SONIC_SYNC_LOG_BACKUPS", settings.backups))
        return settings

    @property
    def perf_file(self) -> Path:
        return self.log_file.with_name("sonic-sync-perf.log")


def _rotating(path: Path, settings: LogSettings, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backups,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATE_FORMAT))
    return handler


def setup_logging(settings: Optional[LogSettings] = None) -> LogSettings:
    """Install console and rotating file handlers.

    Files always capture DEBUG; the console follows ``settings.level``.
    Calling this again replaces the handlers it installed before.
    """
    settings = settings or LogSettings.from_env()
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(settings.level)
    console.setFormatter(logging.Formatter(_LINE_FORMAT, datefmt=_DATE_FORMAT))

    root = logging.getLogger(ROOT_LOGGER)
    for logger in (root, perf_logger):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    root.setLevel(logging.DEBUG)
    root.addHandler(console)
    root.addHandler(_rotating(settings.log_file, settings, _LINE_FORMAT))

    # perf lines stay out of the main file
    perf_logger.propagate = False
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(console)
    perf_logger.addHandler(_rotating(settings.perf_file, settings, _PERF_FORMAT))

    root.info(
        f"Logging initialized: level={logging.getLevelName(settings.level)}, "
        f"file={settings.log_file}, perf={settings.perf_file}"
    )
    return settings


class DeviceLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the device name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['device']}] {msg}", kwargs


def device_logger(device: str, name: str = "sonic_sync.device") -> DeviceLoggerAdapter:
    return DeviceLoggerAdapter(logging.getLogger(name), {"device": device})


def _report(operation: str, device_id: Optional[str], start: float,
            error: Optional[BaseException] = None, **extra) -> None:
    elapsed = (time.perf_counter() - start) * 1000
    outcome = f"FAIL: {error}" if error is not None else "OK"
    line = f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {outcome}"
    if extra:
        line += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    if error is not None:
        perf_logger.warning(line)
    else:
        perf_logger.info(line)


def timed(operation: str, device_id: Optional[str] = None):
    """Log how long the wrapped call took to the perf logger.

    On methods the device id defaults to ``self.device_id``.

        @timed("connect")
        async def connect(self): ...
    """
    def decorator(func: Callable) -> Callable:
        def resolve(args) -> Optional[str]:
            if device_id is None and args:
                return getattr(args[0], "device_id", None)
            return device_id

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _report(operation, resolve(args), start, e)
                    raise
                _report(operation, resolve(args), start)
                return result
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _report(operation, resolve(args), start, e)
                raise
            _report(operation, resolve(args), start)
            return result
        return wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Time a block; keyword arguments are appended to the perf line.

        async with timed_section("pipeline_set", device_id="leaf1", entries=42):
            ...
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        _report(operation, device_id, start, e, **extra)
        raise
    _report(operation, device_id, start, **extra)
