"""APPL_DB (Redis DB 0) route reader.

fpmsyncd writes the control-plane view of each route into ROUTE_TABLE. Keys
use ":" here, not "|": ``ROUTE_TABLE:<prefix>`` for the default VRF and
``ROUTE_TABLE:<vrf>:<prefix>`` otherwise.
"""
import logging
from typing import Optional

import redis.asyncio as aioredis

from .types import DEFAULT_VRF, NextHop, RouteEntry, RouteSource, normalize_vrf
from .utils.connection import close_redis

logger = logging.getLogger(__name__)


def route_table_key(vrf: str, prefix: str) -> str:
    if normalize_vrf(vrf) == DEFAULT_VRF:
        return f"ROUTE_TABLE:{prefix}"
    return f"ROUTE_TABLE:{vrf}:{prefix}"


def parse_next_hops(vals: dict[str, str]) -> list[NextHop]:
    """Pair up comma-separated ``nexthop`` and ``ifname`` lists (ECMP)."""
    ips = vals.get("nexthop", "").split(",")
    interfaces = vals.get("ifname", "").split(",")
    hops = []
    for i, ip in enumerate(ips):
        iface = interfaces[i].strip() if i < len(interfaces) else ""
        hops.append(NextHop(ip=ip.strip(), interface=iface))
    return hops


class AppDBClient:
    """Reads routes from APPL_DB."""

    def __init__(self, client: aioredis.Redis, name: str = ""):
        self.client = client
        self.name = name

    async def connect(self) -> None:
        await self.client.ping()

    async def close(self) -> None:
        await close_redis(self.client, f"{self.name}/appl_db")

    async def get_route(self, vrf: str, prefix: str) -> Optional[RouteEntry]:
        """Single-shot read of one route; None if the prefix is absent."""
        vals = await self.client.hgetall(route_table_key(vrf, prefix))
        # fpmsyncd sometimes drops the /32 on host routes
        if not vals and prefix.endswith("/32"):
            vals = await self.client.hgetall(route_table_key(vrf, prefix[:-3]))
        if not vals:
            return None
        return RouteEntry(
            prefix=prefix,
            vrf=normalize_vrf(vrf),
            protocol=vals.get("protocol", ""),
            next_hops=parse_next_hops(vals),
            source=RouteSource.APP_DB,
        )
