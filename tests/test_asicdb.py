"""Tests for the ASIC_DB object graph resolver."""
import pytest

from sonic_sync.asicdb import (
    ATTR_DEFAULT_VR,
    ATTR_MEMBER_GROUP,
    ATTR_MEMBER_NEXT_HOP,
    ATTR_NEXT_HOP_IP,
    ATTR_ROUTE_NEXT_HOP,
    NEXT_HOP_GROUP_MEMBER_PREFIX,
    NEXT_HOP_GROUP_PREFIX,
    NEXT_HOP_PREFIX,
    SWITCH_PREFIX,
    AsicDBClient,
    route_entry_key,
)
from sonic_sync.configdb.registry import ConfigDBSnapshot
from sonic_sync.errors import AsicResolutionError
from sonic_sync.types import RouteSource

SWITCH = "oid:0x21000000000000"
DEFAULT_VR = "oid:0x3000000000022"
VRF_VR = "oid:0x3000000000099"


async def seed_switch(redis):
    await redis.hset(f"{SWITCH_PREFIX}{SWITCH}", mapping={ATTR_DEFAULT_VR: DEFAULT_VR})


async def seed_next_hop(redis, oid, ip):
    await redis.hset(f"{NEXT_HOP_PREFIX}{oid}", mapping={ATTR_NEXT_HOP_IP: ip})


@pytest.fixture
async def asic(asic_redis):
    await seed_switch(asic_redis)
    client = AsicDBClient(asic_redis, "leaf1")
    await client.connect()
    return client


class TestRouteKey:
    """Tests for the route entry key format."""

    def test_exact_format(self):
        """Field order dest, switch_id, vr with no whitespace."""
        assert route_entry_key("10.1.0.0/24", SWITCH, DEFAULT_VR) == (
            'ASIC_STATE:SAI_OBJECT_TYPE_ROUTE_ENTRY:'
            '{"dest":"10.1.0.0/24","switch_id":"oid:0x21000000000000","vr":"oid:0x3000000000022"}'
        )


class TestBootstrap:
    """Tests for switch and default VR discovery."""

    @pytest.mark.asyncio
    async def test_connect_discovers_switch(self, asic):
        """connect caches the switch OID and default VR."""
        assert asic.switch_oid == SWITCH
        assert asic.default_vr == DEFAULT_VR
        assert asic.vrf_oids == {"default": DEFAULT_VR}

    @pytest.mark.asyncio
    async def test_connect_without_switch(self, asic_redis):
        """An empty ASIC_DB fails bootstrap."""
        with pytest.raises(AsicResolutionError):
            await AsicDBClient(asic_redis).connect()

    @pytest.mark.asyncio
    async def test_connect_without_default_vr(self, asic_redis):
        """A switch object without the default VR attribute fails bootstrap."""
        await asic_redis.hset(f"{SWITCH_PREFIX}{SWITCH}", mapping={"SAI_SWITCH_ATTR_SRC_MAC_ADDRESS": "00:11:22:33:44:55"})
        with pytest.raises(AsicResolutionError):
            await AsicDBClient(asic_redis).connect()


class TestGetRoute:
    """Tests for route lookups and next-hop resolution."""

    @pytest.mark.asyncio
    async def test_single_next_hop(self, asic, asic_redis):
        """A route pointing at one next hop resolves to it."""
        await seed_next_hop(asic_redis, "oid:0x40000000000a1", "10.0.0.1")
        await asic_redis.hset(
            route_entry_key("10.1.0.0/24", SWITCH, DEFAULT_VR),
            mapping={ATTR_ROUTE_NEXT_HOP: "oid:0x40000000000a1"},
        )
        route = await asic.get_route("default", "10.1.0.0/24", None)
        assert route.source == RouteSource.ASIC_DB
        assert [h.ip for h in route.next_hops] == ["10.0.0.1"]

    @pytest.mark.asyncio
    async def test_next_hop_group(self, asic, asic_redis):
        """A group expands to exactly its own members."""
        group = "oid:0x50000000000b1"
        other_group = "oid:0x50000000000b2"
        await asic_redis.hset(f"{NEXT_HOP_GROUP_PREFIX}{group}", mapping={"SAI_NEXT_HOP_GROUP_ATTR_TYPE": "ECMP"})
        for i, ip in enumerate(["10.0.0.1", "10.0.0.5", "10.0.0.9"]):
            nh = f"oid:0x4000000000{i:03x}"
            await seed_next_hop(asic_redis, nh, ip)
            await asic_redis.hset(
                f"{NEXT_HOP_GROUP_MEMBER_PREFIX}oid:0x2d00000000{i:03x}",
                mapping={ATTR_MEMBER_GROUP: group, ATTR_MEMBER_NEXT_HOP: nh},
            )
        # member of another group must not leak in
        await seed_next_hop(asic_redis, "oid:0x4000000000fff", "10.9.9.9")
        await asic_redis.hset(
            f"{NEXT_HOP_GROUP_MEMBER_PREFIX}oid:0x2d00000000fff",
            mapping={ATTR_MEMBER_GROUP: other_group, ATTR_MEMBER_NEXT_HOP: "oid:0x4000000000fff"},
        )
        await asic_redis.hset(
            route_entry_key("10.2.0.0/24", SWITCH, DEFAULT_VR),
            mapping={ATTR_ROUTE_NEXT_HOP: group},
        )

        route = await asic.get_route("default", "10.2.0.0/24", None)
        assert sorted(h.ip for h in route.next_hops) == ["10.0.0.1", "10.0.0.5", "10.0.0.9"]

    @pytest.mark.asyncio
    async def test_unresolvable_next_hop(self, asic, asic_redis):
        """An OID that is neither a next hop nor a group gives no next hops."""
        await asic_redis.hset(
            route_entry_key("10.3.0.0/24", SWITCH, DEFAULT_VR),
            mapping={ATTR_ROUTE_NEXT_HOP: "oid:0xdeadbeef"},
        )
        route = await asic.get_route("default", "10.3.0.0/24", None)
        assert route is not None
        assert route.next_hops == []

    @pytest.mark.asyncio
    async def test_trap_route_has_no_next_hops(self, asic, asic_redis):
        """A route without a next-hop attribute is present with empty next hops."""
        await asic_redis.hset(
            route_entry_key("10.0.0.0/31", SWITCH, DEFAULT_VR),
            mapping={"SAI_ROUTE_ENTRY_ATTR_PACKET_ACTION": "SAI_PACKET_ACTION_FORWARD"},
        )
        route = await asic.get_route("default", "10.0.0.0/31", None)
        assert route is not None
        assert route.next_hops == []

    @pytest.mark.asyncio
    async def test_missing_route_is_none(self, asic):
        """A route not programmed in hardware is None."""
        assert await asic.get_route("default", "192.0.2.0/24", None) is None


class TestVRResolution:
    """Tests for VRF to virtual router resolution."""

    @pytest.mark.asyncio
    async def test_empty_name_is_default(self, asic, asic_redis):
        """An empty VRF name resolves to the default VR without CONFIG_DB."""
        assert await asic.resolve_vr_oid("", None) == DEFAULT_VR
        await asic_redis.hset(route_entry_key("10.1.0.0/24", SWITCH, DEFAULT_VR), mapping={"x": "y"})
        route = await asic.get_route("", "10.1.0.0/24", None)
        assert route.vrf == "default"

    @pytest.mark.asyncio
    async def test_resolve_through_connected_prefix(self, asic, asic_redis):
        """A connected prefix in the VRF reveals its VR OID, which is cached."""
        db = ConfigDBSnapshot()
        db.decode("INTERFACE", "Ethernet8", {"vrf_name": "Vrf_red"})
        db.decode("INTERFACE", "Ethernet8|10.50.0.0/31", {})
        await asic_redis.hset(route_entry_key("10.50.0.0/31", SWITCH, VRF_VR), mapping={"x": "y"})

        assert await asic.resolve_vr_oid("Vrf_red", db) == VRF_VR
        assert asic.vrf_oids["Vrf_red"] == VRF_VR

        # cached: resolves even without the snapshot now
        assert await asic.resolve_vr_oid("Vrf_red", None) == VRF_VR

    @pytest.mark.asyncio
    async def test_no_connected_prefix(self, asic):
        """A VRF without a connected prefix cannot be resolved."""
        with pytest.raises(AsicResolutionError):
            await asic.resolve_vr_oid("Vrf_blue", ConfigDBSnapshot())

    @pytest.mark.asyncio
    async def test_prefix_not_in_asic(self, asic):
        """A connected prefix missing from ASIC_DB cannot be resolved."""
        db = ConfigDBSnapshot()
        db.decode("INTERFACE", "Ethernet8", {"vrf_name": "Vrf_red"})
        db.decode("INTERFACE", "Ethernet8|10.50.0.0/31", {})
        with pytest.raises(AsicResolutionError):
            await asic.resolve_vr_oid("Vrf_red", db)
