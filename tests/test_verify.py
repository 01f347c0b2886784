"""Tests for post-write verification."""
import pytest

from sonic_sync.configdb.client import ConfigDBClient
from sonic_sync.types import CONFIG_DB, ChangeType, ConfigChange
from sonic_sync.verify import ALL_FIELDS, ChangeVerifier, compare_changes


class TestCompareChanges:
    """Tests for compare_changes."""

    @pytest.mark.asyncio
    async def test_superset_passes(self, config_redis):
        """Extra live fields do not fail an add."""
        await config_redis.hset("VLAN|Vlan100", mapping={"vlanid": "100", "admin_status": "up"})
        result = await compare_changes(
            ConfigDBClient(config_redis),
            [ConfigChange("VLAN", "Vlan100", ChangeType.ADD, {"vlanid": "100"})],
        )
        assert result.passed == 1
        assert result.failed == 0
        assert result.errors == []
        assert result.ok

    @pytest.mark.asyncio
    async def test_missing_key(self, config_redis):
        """An absent key is one (all) error."""
        result = await compare_changes(
            ConfigDBClient(config_redis),
            [ConfigChange("VLAN", "Vlan100", ChangeType.ADD, {"vlanid": "100"})],
        )
        assert result.failed == 1
        error = result.errors[0]
        assert error.field == ALL_FIELDS
        assert error.expected == "present"
        assert error.actual == ""

    @pytest.mark.asyncio
    async def test_field_mismatches(self, config_redis):
        """Each wrong or missing field is its own error."""
        await config_redis.hset("PORT|Ethernet0", mapping={"mtu": "1500"})
        result = await compare_changes(
            ConfigDBClient(config_redis),
            [ConfigChange("PORT", "Ethernet0", ChangeType.MODIFY, {"mtu": "9100", "fec": "rs"})],
        )
        assert result.passed == 0
        assert result.failed == 2
        by_field = {e.field: e for e in result.errors}
        assert by_field["mtu"].actual == "1500"
        assert by_field["fec"].actual == ""
        assert not result.ok

    @pytest.mark.asyncio
    async def test_delete(self, config_redis):
        """Deletes pass when gone and fail when still present."""
        await config_redis.hset("VLAN|Vlan200", mapping={"vlanid": "200"})
        result = await compare_changes(
            ConfigDBClient(config_redis),
            [
                ConfigChange("VLAN", "Vlan100", ChangeType.DELETE),
                ConfigChange("VLAN", "Vlan200", ChangeType.DELETE),
            ],
        )
        assert result.passed == 1
        assert result.failed == 1
        assert result.errors[0].expected == "deleted"
        assert result.errors[0].actual == "present"


class TestChangeVerifier:
    """Tests for the fresh-connection verifier."""

    @pytest.mark.asyncio
    async def test_opens_and_closes_fresh_client(self, redis_factory, config_redis):
        """Each verify uses its own client and closes it."""
        await config_redis.hset("VLAN|Vlan100", mapping={"vlanid": "100"})
        opened = []

        async def open_client():
            client = ConfigDBClient(redis_factory("127.0.0.1", 6379, CONFIG_DB), "leaf1")
            opened.append(client)
            return client

        verifier = ChangeVerifier(open_client, "leaf1")
        result = await verifier.verify(
            [ConfigChange("VLAN", "Vlan100", ChangeType.ADD, {"vlanid": "100"})]
        )
        assert result.passed == 1
        assert result.failed == 0
        assert len(opened) == 1
        assert opened[0].client is not config_redis
