"""CONFIG_DB schema, snapshot and client."""
from .client import ConfigDBClient, PLATFORM_MERGE_TABLES
from .registry import (
    CONFIG_DB_DECODERS,
    SHADOW_TABLES,
    ConfigDBSnapshot,
    decode_entry,
    merge_decoder,
)

__all__ = [
    "ConfigDBClient",
    "PLATFORM_MERGE_TABLES",
    "CONFIG_DB_DECODERS",
    "SHADOW_TABLES",
    "ConfigDBSnapshot",
    "decode_entry",
    "merge_decoder",
]
