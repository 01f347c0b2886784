"""ASIC_DB (Redis DB 1) route resolver.

ASIC_DB holds the SAI objects syncd programmed into hardware, so reading a
route here confirms the data plane rather than the control plane. There are
no name indexes: routes are found through a JSON-keyed route entry, and
next-hop groups are expanded by scanning every group member.
"""
import json
import logging
from typing import Optional

import redis.asyncio as aioredis

from .configdb.registry import ConfigDBSnapshot
from .errors import AsicResolutionError
from .types import DEFAULT_VRF, NextHop, RouteEntry, RouteSource, normalize_vrf
from .utils.connection import ASIC_SCAN_COUNT, close_redis, scan_keys

logger = logging.getLogger(__name__)

SWITCH_PREFIX = "ASIC_STATE:SAI_OBJECT_TYPE_SWITCH:"
ROUTE_PREFIX = "ASIC_STATE:SAI_OBJECT_TYPE_ROUTE_ENTRY:"
NEXT_HOP_PREFIX = "ASIC_STATE:SAI_OBJECT_TYPE_NEXT_HOP:"
NEXT_HOP_GROUP_PREFIX = "ASIC_STATE:SAI_OBJECT_TYPE_NEXT_HOP_GROUP:"
NEXT_HOP_GROUP_MEMBER_PREFIX = "ASIC_STATE:SAI_OBJECT_TYPE_NEXT_HOP_GROUP_MEMBER:"

ATTR_DEFAULT_VR = "SAI_SWITCH_ATTR_DEFAULT_VIRTUAL_ROUTER_ID"
ATTR_ROUTE_NEXT_HOP = "SAI_ROUTE_ENTRY_ATTR_NEXT_HOP_ID"
ATTR_NEXT_HOP_IP = "SAI_NEXT_HOP_ATTR_IP"
ATTR_MEMBER_GROUP = "SAI_NEXT_HOP_GROUP_MEMBER_ATTR_NEXT_HOP_GROUP_ID"
ATTR_MEMBER_NEXT_HOP = "SAI_NEXT_HOP_GROUP_MEMBER_ATTR_NEXT_HOP_ID"


def route_entry_key(prefix: str, switch_oid: str, vr_oid: str) -> str:
    """Route entry key exactly as syncd writes it.

    The descriptor is compared as a literal string, so the field order
    (dest, switch_id, vr) and the lack of whitespace must match.
    """
    return f'{ROUTE_PREFIX}{{"dest":"{prefix}","switch_id":"{switch_oid}","vr":"{vr_oid}"}}'


class AsicDBClient:
    """Walks the SAI object graph for route lookups."""

    def __init__(self, client: aioredis.Redis, name: str = ""):
        self.client = client
        self.name = name
        self.switch_oid = ""
        self.default_vr = ""
        self.vrf_oids: dict[str, str] = {}

    async def connect(self) -> None:
        """Ping, then discover the switch OID and its default virtual router."""
        await self.client.ping()

        keys = await scan_keys(self.client, f"{SWITCH_PREFIX}*", ASIC_SCAN_COUNT)
        if not keys:
            raise AsicResolutionError(f"asic_db on {self.name}: cannot discover switch OID")
        switch_key = keys[0]
        self.switch_oid = switch_key[len(SWITCH_PREFIX):]

        default_vr = await self.client.hget(switch_key, ATTR_DEFAULT_VR)
        if not default_vr:
            raise AsicResolutionError(
                f"asic_db on {self.name}: switch {self.switch_oid} has no default VR"
            )
        self.default_vr = default_vr
        self.vrf_oids = {DEFAULT_VRF: default_vr}
        logger.debug(f"ASIC_DB on {self.name}: switch={self.switch_oid} default_vr={default_vr}")

    async def close(self) -> None:
        await close_redis(self.client, f"{self.name}/asic_db")

    async def resolve_vr_oid(self, vrf: str, config_db: Optional[ConfigDBSnapshot]) -> str:
        """VR OID for a VRF name, cached for the life of the connection.

        Non-default VRFs are found through a connected prefix: pick an
        INTERFACE "<name>|<ip/mask>" whose base entry is bound to ``vrf``, then
        scan route entries for that destination and take its ``vr``.
        """
        vrf = normalize_vrf(vrf)
        if vrf in self.vrf_oids:
            return self.vrf_oids[vrf]

        known_prefix = ""
        if config_db is not None:
            for key in config_db.interface:
                base, sep, prefix = key.partition("|")
                if not sep:
                    continue
                base_entry = config_db.interface.get(base)
                if base_entry is not None and base_entry.vrf_name == vrf:
                    known_prefix = prefix
                    break
        if not known_prefix:
            raise AsicResolutionError(f"no connected prefix found for VRF {vrf} in CONFIG_DB")

        for key in await scan_keys(self.client, f"{ROUTE_PREFIX}*", ASIC_SCAN_COUNT):
            try:
                descriptor = json.loads(key[len(ROUTE_PREFIX):])
            except ValueError:
                continue
            if descriptor.get("dest") == known_prefix:
                self.vrf_oids[vrf] = descriptor.get("vr", "")
                return self.vrf_oids[vrf]

        raise AsicResolutionError(
            f"VR OID not found for VRF {vrf} (prefix {known_prefix} not in ASIC_DB)"
        )

    async def get_route(
        self, vrf: str, prefix: str, config_db: Optional[ConfigDBSnapshot]
    ) -> Optional[RouteEntry]:
        """Route as programmed in hardware, or None if not programmed.

        A route without a next-hop attribute (trap, blackhole) is returned
        with an empty ``next_hops`` list.
        """
        vrf = normalize_vrf(vrf)
        vr_oid = await self.resolve_vr_oid(vrf, config_db)
        vals = await self.client.hgetall(route_entry_key(prefix, self.switch_oid, vr_oid))
        if not vals:
            return None

        entry = RouteEntry(prefix=prefix, vrf=vrf, source=RouteSource.ASIC_DB)
        next_hop_oid = vals.get(ATTR_ROUTE_NEXT_HOP)
        if next_hop_oid:
            entry.next_hops = await self.resolve_next_hops(next_hop_oid)
        return entry

    async def resolve_next_hops(self, oid: str) -> list[NextHop]:
        """Expand a next-hop or next-hop-group OID. Unknown OIDs give []."""
        nh_vals = await self.client.hgetall(f"{NEXT_HOP_PREFIX}{oid}")
        if nh_vals:
            return [NextHop(ip=nh_vals.get(ATTR_NEXT_HOP_IP, ""))]

        group_vals = await self.client.hgetall(f"{NEXT_HOP_GROUP_PREFIX}{oid}")
        if not group_vals:
            return []

        hops = []
        member_keys = await scan_keys(self.client, f"{NEXT_HOP_GROUP_MEMBER_PREFIX}*", ASIC_SCAN_COUNT)
        for member_key in member_keys:
            member = await self.client.hgetall(member_key)
            if member.get(ATTR_MEMBER_GROUP) != oid:
                continue
            member_nh = member.get(ATTR_MEMBER_NEXT_HOP)
            if not member_nh:
                continue
            member_vals = await self.client.hgetall(f"{NEXT_HOP_PREFIX}{member_nh}")
            hops.append(NextHop(ip=member_vals.get(ATTR_NEXT_HOP_IP, "")))
        return hops
