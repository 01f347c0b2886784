"""Typed records for fixed-schema CONFIG_DB tables.

Each record is a flat dataclass of string fields. The Redis field name equals
the attribute name unless a ``wire`` name is given in the field metadata
(SONiC uses hyphens and upper case in a few tables).

Records are always rebuilt from the full hash, so decoding the same hash twice
gives equal records and a changed field only changes that attribute.
"""
from dataclasses import dataclass, field, fields as dc_fields
from typing import TypeVar

R = TypeVar("R", bound="Record")


def wire(name: str):
    """Declare a string attribute stored under a different Redis field name."""
    return field(default="", metadata={"wire": name})


@dataclass
class Record:
    """Base for typed table entries."""

    @classmethod
    def from_fields(cls: type[R], values: dict[str, str]) -> R:
        kwargs = {}
        for f in dc_fields(cls):
            kwargs[f.name] = values.get(f.metadata.get("wire", f.name), "")
        return cls(**kwargs)

    def to_fields(self) -> dict[str, str]:
        """Non-empty fields keyed by their Redis field names."""
        out = {}
        for f in dc_fields(self):
            value = getattr(self, f.name)
            if value:
                out[f.metadata.get("wire", f.name)] = value
        return out


@dataclass
class PortEntry(Record):
    admin_status: str = ""
    alias: str = ""
    description: str = ""
    fec: str = ""
    index: str = ""
    lanes: str = ""
    mtu: str = ""
    speed: str = ""
    autoneg: str = ""


@dataclass
class VLANEntry(Record):
    vlanid: str = ""
    description: str = ""
    mtu: str = ""
    admin_status: str = ""
    dhcp_servers: str = ""


@dataclass
class VLANMemberEntry(Record):
    tagging_mode: str = ""  # tagged, untagged


@dataclass
class InterfaceEntry(Record):
    vrf_name: str = ""
    nat_zone: str = ""
    proxy_arp: str = ""
    mpls: str = ""


@dataclass
class PortChannelEntry(Record):
    admin_status: str = ""
    mtu: str = ""
    min_links: str = ""
    fallback: str = ""
    fast_rate: str = ""
    lacp_key: str = ""
    description: str = ""


@dataclass
class VRFEntry(Record):
    vni: str = ""
    fallback: str = ""


@dataclass
class VXLANTunnelEntry(Record):
    src_ip: str = ""


@dataclass
class VXLANMapEntry(Record):
    vlan: str = ""
    vrf: str = ""
    vni: str = ""


@dataclass
class EVPNNVOEntry(Record):
    source_vtep: str = ""


@dataclass
class BGPGlobalsEntry(Record):
    """Global BGP settings, keyed by VRF name ("default" for the global table)."""
    router_id: str = ""
    local_asn: str = ""
    confed_id: str = ""
    confed_peers: str = ""
    graceful_restart: str = ""
    load_balance_mp_relax: str = ""
    rr_cluster_id: str = ""
    ebgp_requires_policy: str = ""
    default_ipv4_unicast: str = ""
    log_neighbor_changes: str = ""
    suppress_fib_pending: str = ""


@dataclass
class BGPGlobalsAFEntry(Record):
    """Address-family settings, key "vrf|af" (e.g. "Vrf_CUST1|l2vpn_evpn")."""
    advertise_all_vni: str = wire("advertise-all-vni")
    advertise_default_gw: str = wire("advertise-default-gw")
    advertise_svi_ip: str = wire("advertise-svi-ip")
    advertise_ipv4_unicast: str = ""
    advertise_ipv6_unicast: str = ""
    rd: str = ""
    rt_import: str = ""
    rt_export: str = ""
    route_target_import_evpn: str = ""
    route_target_export_evpn: str = ""
    max_ebgp_paths: str = ""
    max_ibgp_paths: str = ""


@dataclass
class BGPEVPNVNIEntry(Record):
    rd: str = ""
    route_target_import: str = ""
    route_target_export: str = ""
    advertise_default_gw: str = ""


@dataclass
class BGPNeighborEntry(Record):
    local_addr: str = ""
    name: str = ""
    asn: str = ""
    holdtime: str = ""
    keepalive: str = ""
    admin_status: str = ""
    peer_group: str = ""
    ebgp_multihop: str = ""
    password: str = ""


@dataclass
class BGPNeighborAFEntry(Record):
    activate: str = ""
    route_reflector_client: str = ""
    next_hop_self: str = ""
    soft_reconfiguration: str = ""
    allowas_in: str = ""
    route_map_in: str = ""
    route_map_out: str = ""
    prefix_list_in: str = ""
    prefix_list_out: str = ""
    default_originate: str = ""
    addpath_tx_all_paths: str = ""


@dataclass
class StaticRouteEntry(Record):
    nexthop: str = ""
    ifname: str = ""
    distance: str = ""
    nexthop_vrf: str = wire("nexthop-vrf")
    blackhole: str = ""


@dataclass
class ACLTableEntry(Record):
    policy_desc: str = ""
    type: str = ""
    stage: str = ""
    ports: str = ""  # comma-separated
    services: str = ""


@dataclass
class ACLRuleEntry(Record):
    priority: str = wire("PRIORITY")
    packet_action: str = wire("PACKET_ACTION")
    src_ip: str = wire("SRC_IP")
    dst_ip: str = wire("DST_IP")
    ip_protocol: str = wire("IP_PROTOCOL")
    l4_src_port: str = wire("L4_SRC_PORT")
    l4_dst_port: str = wire("L4_DST_PORT")
    l4_src_port_range: str = wire("L4_SRC_PORT_RANGE")
    l4_dst_port_range: str = wire("L4_DST_PORT_RANGE")
    tcp_flags: str = wire("TCP_FLAGS")
    dscp: str = wire("DSCP")
    icmp_type: str = wire("ICMP_TYPE")
    icmp_code: str = wire("ICMP_CODE")
    ether_type: str = wire("ETHER_TYPE")
    in_ports: str = wire("IN_PORTS")
    redirect_port: str = wire("REDIRECT_PORT")


@dataclass
class ACLTableTypeEntry(Record):
    matches: str = ""
    actions: str = ""
    bind_point_type: str = ""


@dataclass
class SchedulerEntry(Record):
    type: str = ""  # DWRR, STRICT
    weight: str = ""


@dataclass
class QueueEntry(Record):
    scheduler: str = ""
    wred_profile: str = ""


@dataclass
class WREDProfileEntry(Record):
    green_min_threshold: str = ""
    green_max_threshold: str = ""
    green_drop_probability: str = ""
    yellow_min_threshold: str = ""
    yellow_max_threshold: str = ""
    yellow_drop_probability: str = ""
    red_min_threshold: str = ""
    red_max_threshold: str = ""
    red_drop_probability: str = ""
    ecn: str = ""


@dataclass
class PortQoSMapEntry(Record):
    dscp_to_tc_map: str = ""
    tc_to_queue_map: str = ""


@dataclass
class PolicerEntry(Record):
    meter_type: str = ""
    mode: str = ""
    cir: str = ""
    cbs: str = ""
    pir: str = ""
    pbs: str = ""
    green_action: str = ""
    yellow_action: str = ""
    red_action: str = ""


# frrcfgd tables


@dataclass
class RouteRedistributeEntry(Record):
    """Key "vrf|src_protocol|af" (e.g. "default|connected|ipv4")."""
    route_map: str = ""
    metric: str = ""


@dataclass
class RouteMapEntry(Record):
    """Key "map_name|seq"."""
    route_operation: str = ""  # permit, deny
    match_prefix_set: str = ""
    match_community: str = ""
    match_as_path: str = ""
    match_next_hop: str = ""
    set_local_pref: str = ""
    set_community: str = ""
    set_med: str = ""
    set_next_hop: str = ""


@dataclass
class BGPPeerGroupEntry(Record):
    asn: str = ""
    local_addr: str = ""
    admin_status: str = ""
    holdtime: str = ""
    keepalive: str = ""
    password: str = ""


@dataclass
class BGPPeerGroupAFEntry(Record):
    activate: str = ""
    route_reflector_client: str = ""
    next_hop_self: str = ""
    route_map_in: str = ""
    route_map_out: str = ""
    soft_reconfiguration: str = ""


@dataclass
class BGPGlobalsAFNetEntry(Record):
    policy: str = ""


@dataclass
class BGPGlobalsAFAggEntry(Record):
    as_set: str = ""
    summary_only: str = ""


@dataclass
class PrefixSetEntry(Record):
    ip_prefix: str = ""
    action: str = ""
    masklength_range: str = ""  # e.g. "24..32"


@dataclass
class CommunitySetEntry(Record):
    set_type: str = ""
    match_action: str = ""
    community_member: str = ""


@dataclass
class ASPathSetEntry(Record):
    as_path_member: str = ""


@dataclass
class ServiceBindingEntry(Record):
    """Which service was applied to an interface.

    Interface state reads the service name and ACLs from here rather than
    deriving them from object names.
    """
    service_name: str = ""
    ip_address: str = ""
    vrf_name: str = ""
    ipvpn: str = ""
    macvpn: str = ""
    ingress_acl: str = ""
    egress_acl: str = ""
    bgp_neighbor: str = ""
    applied_at: str = ""
    applied_by: str = ""
