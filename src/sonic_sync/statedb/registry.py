"""STATE_DB table registry and snapshot."""
from ..configdb.schema import Record
from .schema import (
    BGPNeighborStateEntry,
    FDBStateEntry,
    InterfaceStateEntry,
    LAGMemberStateEntry,
    LAGStateEntry,
    NeighStateEntry,
    PortStateEntry,
    RouteStateEntry,
    TransceiverInfoEntry,
    TransceiverStatusEntry,
    VLANStateEntry,
    VRFStateEntry,
    VXLANTunnelStateEntry,
)

STATE_DB_DECODERS: dict[str, type[Record]] = {
    "PORT_TABLE": PortStateEntry,
    "LAG_TABLE": LAGStateEntry,
    "LAG_MEMBER_TABLE": LAGMemberStateEntry,
    "VLAN_TABLE": VLANStateEntry,
    "VRF_TABLE": VRFStateEntry,
    "VXLAN_TUNNEL_TABLE": VXLANTunnelStateEntry,
    "BGP_NEIGHBOR_TABLE": BGPNeighborStateEntry,
    "INTERFACE_TABLE": InterfaceStateEntry,
    "NEIGH_TABLE": NeighStateEntry,
    "FDB_TABLE": FDBStateEntry,
    "ROUTE_TABLE": RouteStateEntry,
    "TRANSCEIVER_INFO": TransceiverInfoEntry,
    "TRANSCEIVER_STATUS": TransceiverStatusEntry,
}


class StateDBSnapshot:
    """Read-only operational mirror, one dict per STATE_DB table."""

    def __init__(self):
        self.tables: dict[str, dict[str, Record]] = {name: {} for name in STATE_DB_DECODERS}

    def __getitem__(self, table: str) -> dict[str, Record]:
        return self.tables[table]

    @property
    def port_table(self) -> dict[str, PortStateEntry]:
        return self.tables["PORT_TABLE"]

    @property
    def lag_table(self) -> dict[str, LAGStateEntry]:
        return self.tables["LAG_TABLE"]

    @property
    def lag_member_table(self) -> dict[str, LAGMemberStateEntry]:
        return self.tables["LAG_MEMBER_TABLE"]

    @property
    def vlan_table(self) -> dict[str, VLANStateEntry]:
        return self.tables["VLAN_TABLE"]

    @property
    def vrf_table(self) -> dict[str, VRFStateEntry]:
        return self.tables["VRF_TABLE"]

    @property
    def vxlan_tunnel_table(self) -> dict[str, VXLANTunnelStateEntry]:
        return self.tables["VXLAN_TUNNEL_TABLE"]

    @property
    def bgp_neighbor_table(self) -> dict[str, BGPNeighborStateEntry]:
        return self.tables["BGP_NEIGHBOR_TABLE"]

    def decode(self, table: str, key: str, fields: dict[str, str]) -> bool:
        record_cls = STATE_DB_DECODERS.get(table)
        if record_cls is None:
            return False
        self.tables[table][key] = record_cls.from_fields(fields)
        return True
