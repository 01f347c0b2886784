"""Distributed per-device lock held in STATE_DB.

The lock is a hash ``NEWTRON_LOCK|<device>`` with holder, acquisition time
and TTL. Both acquire and release are Lua scripts so the check and the write
happen atomically on the server. Expiry is set together with the record, so a
crashed holder's lock disappears on its own; nothing needs to reap it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .errors import DeviceLockedError, LockError, LockHolderMismatchError

logger = logging.getLogger(__name__)

LOCK_TABLE = "NEWTRON_LOCK"

# Returns 1 on success, 0 if the key already exists.
ACQUIRE_SCRIPT = """
local key = KEYS[1]
if redis.call("EXISTS", key) == 1 then
    return 0
end
redis.call("HSET", key, "holder", ARGV[1], "acquired", ARGV[2], "ttl", ARGV[3])
redis.call("EXPIRE", key, tonumber(ARGV[3]))
return 1
"""

# Returns 1 when deleted, 0 on holder mismatch, -1 if no lock exists.
RELEASE_SCRIPT = """
local key = KEYS[1]
if redis.call("EXISTS", key) == 0 then
    return -1
end
local current = redis.call("HGET", key, "holder")
if current ~= ARGV[1] then
    return 0
end
redis.call("DEL", key)
return 1
"""


@dataclass
class LockRecord:
    holder: str
    acquired: Optional[datetime]
    ttl: int


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_rfc3339(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class DeviceLockManager:
    """Acquire and release the STATE_DB lock for one device."""

    def __init__(self, client: aioredis.Redis, device: str):
        self.client = client
        self.device = device
        self._acquire = client.register_script(ACQUIRE_SCRIPT)
        self._release = client.register_script(RELEASE_SCRIPT)

    @property
    def key(self) -> str:
        return f"{LOCK_TABLE}|{self.device}"

    async def acquire(self, holder: str, ttl_seconds: int) -> None:
        """Take the lock or raise DeviceLockedError if anyone holds it."""
        try:
            result = await self._acquire(keys=[self.key], args=[holder, _now_rfc3339(), str(ttl_seconds)])
        except RedisError as e:
            raise LockError(f"acquiring lock for {self.device}: {e}") from e
        if int(result) == 0:
            current = await self.holder()
            raise DeviceLockedError(self.device, current.holder if current else None)
        logger.debug(f"Lock on {self.device} acquired by {holder} (ttl={ttl_seconds}s)")

    async def release(self, holder: str) -> None:
        """Release the lock if ``holder`` owns it.

        A missing lock counts as released. A different holder raises
        LockHolderMismatchError and leaves the record alone.
        """
        try:
            result = int(await self._release(keys=[self.key], args=[holder]))
        except RedisError as e:
            raise LockError(f"releasing lock for {self.device}: {e}") from e
        if result == 0:
            raise LockHolderMismatchError(self.device, holder)
        if result == -1:
            logger.debug(f"Lock on {self.device} already gone")
            return
        logger.debug(f"Lock on {self.device} released by {holder}")

    async def holder(self) -> Optional[LockRecord]:
        """Current lock record, or None if the device is unlocked."""
        try:
            vals = await self.client.hgetall(self.key)
        except RedisError as e:
            raise LockError(f"getting lock holder for {self.device}: {e}") from e
        if not vals:
            return None
        try:
            ttl = int(vals.get("ttl", "0"))
        except ValueError:
            ttl = 0
        return LockRecord(
            holder=vals.get("holder", ""),
            acquired=_parse_rfc3339(vals.get("acquired", "")),
            ttl=ttl,
        )
