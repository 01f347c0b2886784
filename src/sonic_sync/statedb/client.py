"""STATE_DB (Redis DB 6) client: operational state reads."""
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import NotFoundError
from ..types import DEFAULT_VRF, NeighEntry, normalize_vrf, redis_key, split_key
from ..utils.connection import SCAN_COUNT, close_redis, scan_keys
from .registry import StateDBSnapshot
from .schema import (
    BGPNeighborStateEntry,
    LAGMemberStateEntry,
    LAGStateEntry,
    PortStateEntry,
    TransceiverInfoEntry,
    TransceiverStatusEntry,
    VXLANTunnelStateEntry,
)

logger = logging.getLogger(__name__)


class StateDBClient:
    """Wraps an asyncio Redis client bound to STATE_DB."""

    def __init__(self, client: aioredis.Redis, name: str = ""):
        self.client = client
        self.name = name

    async def connect(self) -> None:
        await self.client.ping()

    async def close(self) -> None:
        await close_redis(self.client, f"{self.name}/state_db")

    async def get_all(self) -> StateDBSnapshot:
        """Read all known STATE_DB tables into a snapshot."""
        keys = await scan_keys(self.client, "*", SCAN_COUNT)
        db = StateDBSnapshot()
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
        return db

    async def get_entry(self, table: str, key: str) -> Optional[dict[str, str]]:
        """Raw hash for one entry, or None if it does not exist."""
        vals = await self.client.hgetall(redis_key(table, key))
        return vals or None

    async def _require(self, table: str, key: str, what: str) -> dict[str, str]:
        vals = await self.get_entry(table, key)
        if vals is None:
            raise NotFoundError(f"{what} not found in state_db on {self.name}")
        return vals

    async def get_port_state(self, name: str) -> PortStateEntry:
        vals = await self._require("PORT_TABLE", name, f"interface {name}")
        return PortStateEntry.from_fields(vals)

    async def get_lag_state(self, name: str) -> LAGStateEntry:
        vals = await self._require("LAG_TABLE", name, f"LAG {name}")
        return LAGStateEntry.from_fields(vals)

    async def get_lag_member_state(self, lag: str, member: str) -> LAGMemberStateEntry:
        vals = await self._require("LAG_MEMBER_TABLE", f"{lag}|{member}", f"LAG member {lag}|{member}")
        return LAGMemberStateEntry.from_fields(vals)

    async def get_bgp_neighbor_state(self, vrf: str, neighbor: str) -> BGPNeighborStateEntry:
        """Neighbor state keyed "vrf|ip", falling back to the VRF-less key."""
        vals = await self.get_entry("BGP_NEIGHBOR_TABLE", f"{vrf}|{neighbor}")
        if vals is None:
            vals = await self._require("BGP_NEIGHBOR_TABLE", neighbor, f"BGP neighbor {neighbor}")
        return BGPNeighborStateEntry.from_fields(vals)

    async def get_vxlan_tunnel_state(self, name: str) -> VXLANTunnelStateEntry:
        vals = await self._require("VXLAN_TUNNEL_TABLE", name, f"VXLAN tunnel {name}")
        return VXLANTunnelStateEntry.from_fields(vals)

    async def get_remote_vteps(self) -> list[str]:
        """Tunnel names learned via EVPN, from VXLAN_TUNNEL_TABLE keys."""
        keys = await scan_keys(self.client, "VXLAN_TUNNEL_TABLE|*", SCAN_COUNT)
        vteps = []
        for key in keys:
            parts = split_key(key)
            if parts is not None:
                vteps.append(parts[1])
        return vteps

    async def get_route_count(self, vrf: str = DEFAULT_VRF) -> int:
        if normalize_vrf(vrf) == DEFAULT_VRF:
            pattern = "ROUTE_TABLE|*"
        else:
            pattern = f"ROUTE_TABLE|{vrf}|*"
        return len(await scan_keys(self.client, pattern, SCAN_COUNT))

    async def get_fdb_count(self, vlan: int) -> int:
        return len(await scan_keys(self.client, f"FDB_TABLE|Vlan{vlan}|*", SCAN_COUNT))

    async def get_transceiver_info(self, port: str) -> TransceiverInfoEntry:
        vals = await self._require("TRANSCEIVER_INFO", port, f"transceiver info for {port}")
        return TransceiverInfoEntry.from_fields(vals)

    async def get_transceiver_status(self, port: str) -> TransceiverStatusEntry:
        vals = await self._require("TRANSCEIVER_STATUS", port, f"transceiver status for {port}")
        return TransceiverStatusEntry.from_fields(vals)

    async def get_neighbor(self, interface: str, ip: str) -> Optional[NeighEntry]:
        """ARP/NDP entry at NEIGH_TABLE|<interface>|<ip>, or None."""
        vals = await self.get_entry("NEIGH_TABLE", f"{interface}|{ip}")
        if vals is None:
            return None
        return NeighEntry(
            ip=ip,
            interface=interface,
            mac=vals.get("neigh", ""),
            family=vals.get("family", ""),
        )
