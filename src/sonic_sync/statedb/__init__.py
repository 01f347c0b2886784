"""STATE_DB schema, snapshot and client."""
from .client import StateDBClient
from .registry import STATE_DB_DECODERS, StateDBSnapshot

__all__ = ["StateDBClient", "STATE_DB_DECODERS", "StateDBSnapshot"]
