"""Tests for the APPL_DB route reader."""
import pytest

from sonic_sync.appdb import AppDBClient, parse_next_hops, route_table_key
from sonic_sync.types import RouteSource


class TestRouteKeys:
    """Tests for key construction and next-hop parsing."""

    def test_route_table_key(self):
        """Default VRF omits the VRF segment."""
        assert route_table_key("default", "10.0.0.0/24") == "ROUTE_TABLE:10.0.0.0/24"
        assert route_table_key("", "10.0.0.0/24") == "ROUTE_TABLE:10.0.0.0/24"
        assert route_table_key("Vrf1", "10.0.0.0/24") == "ROUTE_TABLE:Vrf1:10.0.0.0/24"

    def test_parse_ecmp(self):
        """Comma-separated lists pair up by position."""
        hops = parse_next_hops({"nexthop": "10.0.0.1,10.0.0.5", "ifname": "Ethernet0,Ethernet4"})
        assert [(h.ip, h.interface) for h in hops] == [
            ("10.0.0.1", "Ethernet0"), ("10.0.0.5", "Ethernet4"),
        ]

    def test_parse_short_ifname_list(self):
        """Missing interface names are blank."""
        hops = parse_next_hops({"nexthop": "10.0.0.1,10.0.0.5", "ifname": "Ethernet0"})
        assert hops[1].interface == ""


class TestAppDBClient:
    """Tests for AppDBClient.get_route."""

    @pytest.mark.asyncio
    async def test_get_route(self, appl_redis):
        """Routes parse into RouteEntry with APP_DB source."""
        await appl_redis.hset(
            "ROUTE_TABLE:10.1.0.0/24",
            mapping={"nexthop": "10.0.0.1", "ifname": "Ethernet0", "protocol": "bgp"},
        )
        route = await AppDBClient(appl_redis, "leaf1").get_route("default", "10.1.0.0/24")
        assert route.source == RouteSource.APP_DB
        assert route.protocol == "bgp"
        assert route.next_hops[0].ip == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_host_route_without_mask(self, appl_redis):
        """/32 routes are also looked up without the mask."""
        await appl_redis.hset("ROUTE_TABLE:Vrf1:10.9.9.9", mapping={"nexthop": "10.0.0.1", "ifname": "Ethernet0"})
        route = await AppDBClient(appl_redis).get_route("Vrf1", "10.9.9.9/32")
        assert route is not None
        assert route.prefix == "10.9.9.9/32"
        assert route.vrf == "Vrf1"

    @pytest.mark.asyncio
    async def test_empty_vrf_is_default(self, appl_redis):
        """An empty VRF name reads the default table."""
        await appl_redis.hset("ROUTE_TABLE:10.1.0.0/24", mapping={"nexthop": "10.0.0.1", "ifname": "Ethernet0"})
        route = await AppDBClient(appl_redis).get_route("", "10.1.0.0/24")
        assert route.vrf == "default"

    @pytest.mark.asyncio
    async def test_missing_route_is_none(self, appl_redis):
        """Absent prefixes return None, not an error."""
        assert await AppDBClient(appl_redis).get_route("default", "192.0.2.0/24") is None
