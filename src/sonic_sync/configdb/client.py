"""CONFIG_DB (Redis DB 4) client: full load, point reads, transactional writes."""
import logging
from typing import Iterable

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from ..errors import TransactionError
from ..types import NULL_FIELD, Entry, redis_key, split_key
from ..utils.connection import SCAN_COUNT, close_redis, scan_keys
from .registry import ConfigDBSnapshot

logger = logging.getLogger(__name__)

# Tables owned by the SONiC platform (port_config.ini / portsyncd). replace_all
# overlays fields on these but never deletes their keys, so lanes, alias and
# index survive.
PLATFORM_MERGE_TABLES = frozenset({"PORT"})


class ConfigDBClient:
    """Wraps an asyncio Redis client bound to CONFIG_DB."""

    def __init__(self, client: aioredis.Redis, name: str = ""):
        self.client = client
        self.name = name

    async def connect(self) -> None:
        await self.client.ping()

    async def close(self) -> None:
        await close_redis(self.client, f"{self.name}/config_db")

    async def get_all(self) -> ConfigDBSnapshot:
        """Read the whole CONFIG_DB into a fresh snapshot."""
        keys = await scan_keys(self.client, "*", SCAN_COUNT)
        db = ConfigDBSnapshot()
        for key in keys:
            parts = split_key(key)
            if parts is None:
                continue
            table, entry = parts
            try:
                vals = await self.client.hgetall(key)
            except RedisError as e:
                logger.warning(f"Skipping {key} on {self.name}: {e}")
                continue
            db.decode(table, entry, vals)
        logger.debug(f"Loaded {len(keys)} CONFIG_DB keys from {self.name}")
        return db

    async def set(self, table: str, key: str, fields: dict[str, str]) -> None:
        """Write one entry in a single HSET.

        All fields go in one call so subscribers never see half a record. An
        empty ``fields`` writes the NULL placeholder so the key exists.
        """
        mapping = fields if fields else {NULL_FIELD: NULL_FIELD}
        await self.client.hset(redis_key(table, key), mapping=mapping)

    async def delete(self, table: str, key: str) -> None:
        await self.client.delete(redis_key(table, key))

    async def delete_field(self, table: str, key: str, field: str) -> None:
        await self.client.hdel(redis_key(table, key), field)

    async def get(self, table: str, key: str) -> dict[str, str]:
        """Raw hash for one entry; empty if the key does not exist."""
        return await self.client.hgetall(redis_key(table, key))

    async def exists(self, table: str, key: str) -> bool:
        return await self.client.exists(redis_key(table, key)) > 0

    async def table_keys(self, table: str) -> list[str]:
        """All Redis keys of ``table`` (full "TABLE|key" form)."""
        return await scan_keys(self.client, f"{table}|*", SCAN_COUNT)

    async def pipeline_set(self, entries: Iterable[Entry]) -> None:
        """Apply entries atomically in one MULTI/EXEC transaction.

        ``fields=None`` deletes, ``{}`` writes the NULL placeholder, anything
        else is one multi-field HSET.

        Redis does not roll back a transaction when one command fails, so every
        key the batch writes is WATCHed and checked to be a hash (or absent)
        before MULTI. A wrong-typed key, or one changed by another client
        before EXEC, rejects the whole batch with nothing written.
        """
        entries = list(entries)
        if not entries:
            return
        write_keys = sorted({e.redis_key for e in entries if e.fields is not None})
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                if write_keys:
                    await pipe.watch(*write_keys)
                    for rkey in write_keys:
                        kind = await pipe.type(rkey)
                        if kind not in ("hash", "none"):
                            raise TransactionError(
                                f"pipeline on {self.name}: {rkey} holds a {kind}, not a hash"
                            )
                    pipe.multi()
                for entry in entries:
                    rkey = entry.redis_key
                    if entry.fields is None:
                        pipe.delete(rkey)
                    elif not entry.fields:
                        pipe.hset(rkey, mapping={NULL_FIELD: NULL_FIELD})
                    else:
                        pipe.hset(rkey, mapping=entry.fields)
                await pipe.execute()
        except WatchError as e:
            raise TransactionError(f"pipeline on {self.name}: keys changed before exec") from e
        except RedisError as e:
            raise TransactionError(f"pipeline exec on {self.name}: {e}") from e
        logger.debug(f"Pipeline wrote {len(entries)} entries to {self.name}")

    async def replace_all(self, entries: Iterable[Entry]) -> int:
        """Make the composite authoritative for the tables it contains.

        For every table in ``entries`` (except PLATFORM_MERGE_TABLES), keys
        present in Redis but absent from the composite are deleted. Keys the
        composite provides are not deleted first, so HSET overlays our fields
        on top of factory fields. Tables absent from the composite are never
        touched. The deletes and the writes go in the same transaction, so a
        rejected composite leaves the database as it was.

        Returns the number of stale keys removed.
        """
        entries = list(entries)
        tables = {e.table for e in entries if e.table not in PLATFORM_MERGE_TABLES}
        composite = {e.redis_key for e in entries}

        stale: list[Entry] = []
        for table in sorted(tables):
            for key in await self.table_keys(table):
                if key not in composite:
                    _, entry_key = split_key(key)
                    stale.append(Entry(table, entry_key, None))

        await self.pipeline_set(stale + entries)
        if stale:
            logger.info(f"Removed {len(stale)} stale CONFIG_DB keys on {self.name}")
        return len(stale)
