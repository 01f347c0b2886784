"""CONFIG_DB table registry and the in-memory snapshot it fills.

The registry is a plain dict from table name to decoder. Fixed-schema tables
decode into the records in :mod:`.schema`; open-schema tables merge their
fields into ``dict[str, dict[str, str]]`` so repeated decodes for the same key
accumulate instead of replacing.

Unknown table names are skipped by :func:`decode_entry`, which keeps a full
scan working when the device carries tables this package does not know yet.
"""
import logging
from typing import Callable, Iterable, Optional, Union

from ..types import Entry
from .schema import (
    ACLRuleEntry,
    ACLTableEntry,
    ACLTableTypeEntry,
    ASPathSetEntry,
    BGPEVPNVNIEntry,
    BGPGlobalsAFAggEntry,
    BGPGlobalsAFEntry,
    BGPGlobalsAFNetEntry,
    BGPGlobalsEntry,
    BGPNeighborAFEntry,
    BGPNeighborEntry,
    BGPPeerGroupAFEntry,
    BGPPeerGroupEntry,
    CommunitySetEntry,
    EVPNNVOEntry,
    InterfaceEntry,
    PolicerEntry,
    PortChannelEntry,
    PortEntry,
    PortQoSMapEntry,
    PrefixSetEntry,
    QueueEntry,
    Record,
    RouteMapEntry,
    RouteRedistributeEntry,
    SchedulerEntry,
    ServiceBindingEntry,
    StaticRouteEntry,
    VLANEntry,
    VLANMemberEntry,
    VRFEntry,
    VXLANMapEntry,
    VXLANTunnelEntry,
    WREDProfileEntry,
)

logger = logging.getLogger(__name__)

SERVICE_BINDING_TABLE = "NEWTRON_SERVICE_BINDING"

# Fixed-schema tables and the record each decodes into.
RECORD_TABLES: dict[str, type[Record]] = {
    "PORT": PortEntry,
    "VLAN": VLANEntry,
    "VLAN_MEMBER": VLANMemberEntry,
    "INTERFACE": InterfaceEntry,
    "PORTCHANNEL": PortChannelEntry,
    "VRF": VRFEntry,
    "VXLAN_TUNNEL": VXLANTunnelEntry,
    "VXLAN_TUNNEL_MAP": VXLANMapEntry,
    "VXLAN_EVPN_NVO": EVPNNVOEntry,
    "BGP_NEIGHBOR": BGPNeighborEntry,
    "BGP_NEIGHBOR_AF": BGPNeighborAFEntry,
    "BGP_GLOBALS": BGPGlobalsEntry,
    "BGP_GLOBALS_AF": BGPGlobalsAFEntry,
    "BGP_EVPN_VNI": BGPEVPNVNIEntry,
    "ROUTE_TABLE": StaticRouteEntry,
    "ACL_TABLE": ACLTableEntry,
    "ACL_RULE": ACLRuleEntry,
    "ACL_TABLE_TYPE": ACLTableTypeEntry,
    "SCHEDULER": SchedulerEntry,
    "QUEUE": QueueEntry,
    "WRED_PROFILE": WREDProfileEntry,
    "PORT_QOS_MAP": PortQoSMapEntry,
    "POLICER": PolicerEntry,
    "ROUTE_REDISTRIBUTE": RouteRedistributeEntry,
    "ROUTE_MAP": RouteMapEntry,
    "BGP_PEER_GROUP": BGPPeerGroupEntry,
    "BGP_PEER_GROUP_AF": BGPPeerGroupAFEntry,
    "BGP_GLOBALS_AF_NETWORK": BGPGlobalsAFNetEntry,
    "BGP_GLOBALS_AF_AGGREGATE_ADDR": BGPGlobalsAFAggEntry,
    "PREFIX_SET": PrefixSetEntry,
    "COMMUNITY_SET": CommunitySetEntry,
    "AS_PATH_SET": ASPathSetEntry,
    SERVICE_BINDING_TABLE: ServiceBindingEntry,
}

# Open-schema tables: field names vary per key.
MERGE_TABLES = (
    "DEVICE_METADATA",
    "VLAN_INTERFACE",
    "LOOPBACK_INTERFACE",
    "PORTCHANNEL_MEMBER",
    "SUPPRESS_VLAN_NEIGH",
    "SAG",
    "SAG_GLOBAL",
    "DSCP_TO_TC_MAP",
    "TC_TO_QUEUE_MAP",
)

CONFIG_DB_TABLES = tuple(RECORD_TABLES) + MERGE_TABLES

# Tables tracked by ConfigDBSnapshot.apply_entries for precondition checks.
# Other tables still load on a full scan but are not shadow-updated.
SHADOW_TABLES = frozenset({
    "PORT",
    "VLAN",
    "VLAN_MEMBER",
    "VLAN_INTERFACE",
    "INTERFACE",
    "PORTCHANNEL",
    "PORTCHANNEL_MEMBER",
    "VRF",
    "VXLAN_TUNNEL",
    "VXLAN_TUNNEL_MAP",
    "VXLAN_EVPN_NVO",
    "BGP_NEIGHBOR",
    "BGP_GLOBALS",
    "ACL_TABLE",
    "DEVICE_METADATA",
    SERVICE_BINDING_TABLE,
})

TableRow = Union[Record, dict[str, str]]
Decoder = Callable[["ConfigDBSnapshot", str, dict[str, str]], None]


class ConfigDBSnapshot:
    """Typed in-memory mirror of CONFIG_DB.

    Every known table has a dict from construction on, so lookups never need
    a presence check on the table itself.
    """

    def __init__(self):
        self.tables: dict[str, dict[str, TableRow]] = {name: {} for name in CONFIG_DB_TABLES}

    def __getitem__(self, table: str) -> dict[str, TableRow]:
        return self.tables[table]

    def __contains__(self, table: str) -> bool:
        return table in self.tables

    # Frequently used tables

    @property
    def device_metadata(self) -> dict[str, dict[str, str]]:
        return self.tables["DEVICE_METADATA"]

    @property
    def port(self) -> dict[str, PortEntry]:
        return self.tables["PORT"]

    @property
    def vlan(self) -> dict[str, VLANEntry]:
        return self.tables["VLAN"]

    @property
    def vlan_member(self) -> dict[str, VLANMemberEntry]:
        return self.tables["VLAN_MEMBER"]

    @property
    def vlan_interface(self) -> dict[str, dict[str, str]]:
        return self.tables["VLAN_INTERFACE"]

    @property
    def interface(self) -> dict[str, InterfaceEntry]:
        return self.tables["INTERFACE"]

    @property
    def portchannel(self) -> dict[str, PortChannelEntry]:
        return self.tables["PORTCHANNEL"]

    @property
    def portchannel_member(self) -> dict[str, dict[str, str]]:
        return self.tables["PORTCHANNEL_MEMBER"]

    @property
    def vrf(self) -> dict[str, VRFEntry]:
        return self.tables["VRF"]

    @property
    def vxlan_tunnel(self) -> dict[str, VXLANTunnelEntry]:
        return self.tables["VXLAN_TUNNEL"]

    @property
    def vxlan_tunnel_map(self) -> dict[str, VXLANMapEntry]:
        return self.tables["VXLAN_TUNNEL_MAP"]

    @property
    def bgp_neighbor(self) -> dict[str, BGPNeighborEntry]:
        return self.tables["BGP_NEIGHBOR"]

    @property
    def bgp_globals(self) -> dict[str, BGPGlobalsEntry]:
        return self.tables["BGP_GLOBALS"]

    @property
    def acl_table(self) -> dict[str, ACLTableEntry]:
        return self.tables["ACL_TABLE"]

    @property
    def service_binding(self) -> dict[str, ServiceBindingEntry]:
        return self.tables[SERVICE_BINDING_TABLE]

    def decode(self, table: str, key: str, fields: dict[str, str]) -> bool:
        return decode_entry(self, table, key, fields)

    def has_key(self, table: str, key: str) -> bool:
        rows = self.tables.get(table)
        if rows is None:
            return False
        return key in rows

    def apply_entries(self, entries: Iterable[Entry]) -> None:
        """Shadow-update the snapshot with pending writes.

        Only SHADOW_TABLES are tracked. Field writes overlay existing fields
        the way HSET does; ``fields=None`` removes the key.
        """
        for entry in entries:
            if entry.table not in SHADOW_TABLES:
                continue
            rows = self.tables[entry.table]
            if entry.fields is None:
                rows.pop(entry.key, None)
                continue
            current = rows.get(entry.key)
            if isinstance(current, Record):
                merged = current.to_fields()
                merged.update(entry.fields)
                rows[entry.key] = RECORD_TABLES[entry.table].from_fields(merged)
            else:
                decode_entry(self, entry.table, entry.key, entry.fields)

    # Nil-safe queries, also available as module functions

    def has_vlan(self, vlan_id: int) -> bool:
        return has_vlan(self, vlan_id)

    def has_vrf(self, name: str) -> bool:
        return has_vrf(self, name)

    def has_port_channel(self, name: str) -> bool:
        return has_port_channel(self, name)

    def has_acl_table(self, name: str) -> bool:
        return has_acl_table(self, name)

    def has_vtep(self) -> bool:
        return has_vtep(self)

    def has_bgp_neighbor(self, key: str) -> bool:
        return has_bgp_neighbor(self, key)

    def has_interface(self, name: str) -> bool:
        return has_interface(self, name)

    def bgp_configured(self) -> bool:
        return bgp_configured(self)

    def __repr__(self) -> str:
        populated = sum(1 for rows in self.tables.values() if rows)
        return f"ConfigDBSnapshot({populated} populated tables)"


def _record_decoder(table: str, record_cls: type[Record]) -> Decoder:
    def decode(db: ConfigDBSnapshot, key: str, fields: dict[str, str]) -> None:
        db.tables[table][key] = record_cls.from_fields(fields)
    return decode


def merge_decoder(table: str) -> Decoder:
    """Decoder that merges fields into the existing per-key dict."""
    def decode(db: ConfigDBSnapshot, key: str, fields: dict[str, str]) -> None:
        db.tables[table].setdefault(key, {}).update(fields)
    return decode


CONFIG_DB_DECODERS: dict[str, Decoder] = {
    **{table: _record_decoder(table, cls) for table, cls in RECORD_TABLES.items()},
    **{table: merge_decoder(table) for table in MERGE_TABLES},
}


def decode_entry(db: ConfigDBSnapshot, table: str, key: str, fields: dict[str, str]) -> bool:
    """Decode one hash into ``db``. Returns False for unknown tables."""
    decoder = CONFIG_DB_DECODERS.get(table)
    if decoder is None:
        logger.debug(f"Skipping unknown CONFIG_DB table {table} ({key})")
        return False
    decoder(db, key, fields)
    return True


# Queries that accept a missing snapshot and answer False.


def has_vlan(db: Optional[ConfigDBSnapshot], vlan_id: int) -> bool:
    if db is None:
        return False
    return f"Vlan{vlan_id}" in db.vlan


def has_vrf(db: Optional[ConfigDBSnapshot], name: str) -> bool:
    if db is None:
        return False
    return name in db.vrf


def has_port_channel(db: Optional[ConfigDBSnapshot], name: str) -> bool:
    if db is None:
        return False
    return name in db.portchannel


def has_acl_table(db: Optional[ConfigDBSnapshot], name: str) -> bool:
    if db is None:
        return False
    return name in db.acl_table


def has_vtep(db: Optional[ConfigDBSnapshot]) -> bool:
    if db is None:
        return False
    return len(db.vxlan_tunnel) > 0


def has_bgp_neighbor(db: Optional[ConfigDBSnapshot], key: str) -> bool:
    """Key format is "vrf|ip" (e.g. "default|10.0.0.2")."""
    if db is None:
        return False
    return key in db.bgp_neighbor


def has_interface(db: Optional[ConfigDBSnapshot], name: str) -> bool:
    """True if ``name`` is a PORT or a PORTCHANNEL."""
    if db is None:
        return False
    return name in db.port or name in db.portchannel


def bgp_configured(db: Optional[ConfigDBSnapshot]) -> bool:
    """BGP counts as configured with any neighbor or a DEVICE_METADATA bgp_asn."""
    if db is None:
        return False
    if db.bgp_neighbor:
        return True
    meta = db.device_metadata.get("localhost", {})
    return bool(meta.get("bgp_asn"))
