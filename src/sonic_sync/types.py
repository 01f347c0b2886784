"""Wire-level and result types shared across the SONiC clients."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

# Composite keys in CONFIG_DB/STATE_DB use "|" between table and key segments.
KEY_SEPARATOR = "|"

# SONiC writes this placeholder so field-less entries still create a key.
NULL_FIELD = "NULL"

CONFIG_DB = 4
STATE_DB = 6
APPL_DB = 0
ASIC_DB = 1
REDIS_PORT = 6379

DEFAULT_VRF = "default"


def redis_key(table: str, key: str) -> str:
    return f"{table}{KEY_SEPARATOR}{key}"


def normalize_vrf(vrf: Optional[str]) -> str:
    """An empty VRF name means the default VRF."""
    return vrf or DEFAULT_VRF


def split_key(redis_key: str) -> Optional[tuple[str, str]]:
    """Split "TABLE|key|sub" into ("TABLE", "key|sub"), or None without a separator."""
    table, sep, rest = redis_key.partition(KEY_SEPARATOR)
    if not sep:
        return None
    return table, rest


@dataclass
class Entry:
    """A single CONFIG_DB entry.

    ``fields=None`` deletes the key; ``fields={}`` creates it with the NULL
    placeholder.
    """
    table: str
    key: str
    fields: Optional[dict[str, str]] = None

    @property
    def redis_key(self) -> str:
        return redis_key(self.table, self.key)


class ChangeType(str, Enum):
    """Type of configuration change."""
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass
class ConfigChange:
    """A single configuration change handed in by the orchestration layer."""
    table: str
    key: str
    type: ChangeType
    fields: dict[str, str] = field(default_factory=dict)

    def to_entry(self) -> Entry:
        if self.type == ChangeType.DELETE:
            return Entry(self.table, self.key, None)
        return Entry(self.table, self.key, dict(self.fields))

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "key": self.key,
            "type": self.type.value,
            "fields": dict(self.fields),
        }


class RouteSource(str, Enum):
    """Which Redis database a route was read from."""
    APP_DB = "APP_DB"
    ASIC_DB = "ASIC_DB"


@dataclass
class NextHop:
    ip: str
    interface: str = ""


@dataclass
class RouteEntry:
    """A route read from APPL_DB (control plane) or ASIC_DB (hardware)."""
    prefix: str
    vrf: str
    source: RouteSource
    protocol: str = ""
    next_hops: list[NextHop] = field(default_factory=list)


@dataclass
class VerificationError:
    """A single verification mismatch. ``actual`` is "" when missing."""
    table: str
    key: str
    field: str
    expected: str
    actual: str = ""


@dataclass
class VerificationResult:
    """Outcome of re-reading CONFIG_DB after a write."""
    passed: int = 0
    failed: int = 0
    errors: list[VerificationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "errors": [
                {
                    "table": e.table,
                    "key": e.key,
                    "field": e.field,
                    "expected": e.expected,
                    "actual": e.actual,
                }
                for e in self.errors
            ],
        }


@dataclass
class NeighEntry:
    """ARP/NDP neighbor entry from STATE_DB NEIGH_TABLE."""
    ip: str
    interface: str
    mac: str = ""
    family: str = ""
