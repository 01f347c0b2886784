"""Tests for the CONFIG_DB client: loading, point reads and transactional writes."""
import pytest
from redis.exceptions import ResponseError

from sonic_sync.configdb.client import PLATFORM_MERGE_TABLES, ConfigDBClient
from sonic_sync.errors import TransactionError
from sonic_sync.types import Entry


@pytest.fixture
def client(config_redis):
    return ConfigDBClient(config_redis, "leaf1")


class TestLoad:
    """Tests for the full CONFIG_DB scan."""

    @pytest.mark.asyncio
    async def test_get_all(self, client, config_redis):
        """Known tables decode; unknown tables and bare keys are skipped."""
        await config_redis.hset("PORT|Ethernet0", mapping={"admin_status": "up", "speed": "100000"})
        await config_redis.hset("VLAN|Vlan100", mapping={"vlanid": "100"})
        await config_redis.hset("VLAN_MEMBER|Vlan100|Ethernet0", mapping={"tagging_mode": "tagged"})
        await config_redis.hset("SOMETHING_NEW|x", mapping={"a": "b"})
        await config_redis.hset("noseparator", mapping={"a": "b"})

        db = await client.get_all()
        assert db.port["Ethernet0"].speed == "100000"
        assert db.has_vlan(100)
        assert db.vlan_member["Vlan100|Ethernet0"].tagging_mode == "tagged"
        assert "SOMETHING_NEW" not in db

    @pytest.mark.asyncio
    async def test_get_all_pages_through_scan(self, client, config_redis):
        """More keys than one SCAN page are all loaded."""
        for i in range(250):
            await config_redis.hset(f"VLAN|Vlan{i + 1}", mapping={"vlanid": str(i + 1)})
        db = await client.get_all()
        assert len(db.vlan) == 250

    @pytest.mark.asyncio
    async def test_non_hash_key_skipped(self, client, config_redis):
        """A key whose hash read fails is skipped and the scan continues."""
        await config_redis.set("PORT|broken", "not-a-hash")
        await config_redis.hset("PORT|Ethernet4", mapping={"admin_status": "up"})
        db = await client.get_all()
        assert "broken" not in db.port
        assert "Ethernet4" in db.port


class TestPointOps:
    """Tests for single-entry reads and writes."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, client):
        """set writes every field; get reads them back."""
        await client.set("VLAN", "Vlan100", {"vlanid": "100", "description": "users"})
        assert await client.get("VLAN", "Vlan100") == {"vlanid": "100", "description": "users"}

    @pytest.mark.asyncio
    async def test_set_empty_fields_writes_null(self, client, config_redis):
        """Empty fields create the key with the NULL placeholder."""
        await client.set("VRF", "Vrf_red", {})
        assert await config_redis.hgetall("VRF|Vrf_red") == {"NULL": "NULL"}

    @pytest.mark.asyncio
    async def test_get_missing(self, client):
        """Missing keys read as an empty dict."""
        assert await client.get("VLAN", "Vlan999") == {}
        assert await client.exists("VLAN", "Vlan999") is False

    @pytest.mark.asyncio
    async def test_delete_and_delete_field(self, client):
        """delete removes the key; delete_field removes one field."""
        await client.set("PORT", "Ethernet0", {"mtu": "9100", "description": "uplink"})
        await client.delete_field("PORT", "Ethernet0", "description")
        assert await client.get("PORT", "Ethernet0") == {"mtu": "9100"}
        await client.delete("PORT", "Ethernet0")
        assert await client.exists("PORT", "Ethernet0") is False

    @pytest.mark.asyncio
    async def test_table_keys(self, client):
        """table_keys returns full Redis keys for one table."""
        await client.set("VLAN", "Vlan100", {"vlanid": "100"})
        await client.set("VLAN", "Vlan200", {"vlanid": "200"})
        await client.set("VRF", "Vrf1", {})
        assert sorted(await client.table_keys("VLAN")) == ["VLAN|Vlan100", "VLAN|Vlan200"]


class TestPipelineSet:
    """Tests for atomic batch writes."""

    @pytest.mark.asyncio
    async def test_mixed_batch(self, client, config_redis):
        """Set, NULL placeholder and delete in one transaction."""
        await config_redis.hset("VLAN|Vlan300", mapping={"vlanid": "300"})
        await client.pipeline_set([
            Entry("VLAN", "Vlan100", {"vlanid": "100"}),
            Entry("VLAN_MEMBER", "Vlan100|Ethernet0", {"tagging_mode": "untagged"}),
            Entry("VRF", "Vrf_blue", {}),
            Entry("VLAN", "Vlan300", None),
        ])
        assert await client.get("VLAN", "Vlan100") == {"vlanid": "100"}
        assert await client.get("VRF", "Vrf_blue") == {"NULL": "NULL"}
        assert await client.exists("VLAN", "Vlan300") is False

    @pytest.mark.asyncio
    async def test_empty_batch(self, client, config_redis):
        """An empty batch writes nothing."""
        await client.pipeline_set([])
        assert await config_redis.dbsize() == 0

    @pytest.mark.asyncio
    async def test_failure_is_transaction_error(self, client, config_redis):
        """A wrong-typed key rejects the whole batch; nothing else is written."""
        await config_redis.set("VLAN|Vlan100", "string-not-hash")
        await config_redis.hset("VRF|Vrf_red", mapping={"vni": "1000"})
        with pytest.raises(TransactionError):
            await client.pipeline_set([
                Entry("VLAN", "Vlan200", {"vlanid": "200"}),
                Entry("VRF", "Vrf_red", None),
                Entry("VLAN", "Vlan100", {"vlanid": "100"}),
            ])
        assert await client.exists("VLAN", "Vlan200") is False
        assert await client.exists("VRF", "Vrf_red") is True
        assert await config_redis.get("VLAN|Vlan100") == "string-not-hash"


class TestReplaceAll:
    """Tests for selective bulk replace."""

    @pytest.mark.asyncio
    async def test_stale_keys_removed(self, client, config_redis):
        """Stale keys of composite tables go; PORT and other tables stay."""
        await config_redis.hset("PORT|Ethernet0", mapping={"lanes": "0,1,2,3", "alias": "eth0"})
        await config_redis.hset("VLAN|Vlan100", mapping={"vlanid": "100"})
        await config_redis.hset("VLAN|Vlan200", mapping={"vlanid": "200"})
        await config_redis.hset("VRF|Vrf_red", mapping={"vni": "1000"})

        removed = await client.replace_all([
            Entry("VLAN", "Vlan100", {"vlanid": "100", "description": "kept"}),
            Entry("PORT", "Ethernet0", {"admin_status": "up"}),
        ])

        assert removed == 1
        assert await client.exists("VLAN", "Vlan200") is False
        assert await client.get("VLAN", "Vlan100") == {"vlanid": "100", "description": "kept"}
        # Platform fields survive and ours are overlaid
        assert await client.get("PORT", "Ethernet0") == {
            "lanes": "0,1,2,3", "alias": "eth0", "admin_status": "up",
        }
        # VRF was not in the composite
        assert await client.exists("VRF", "Vrf_red") is True

    @pytest.mark.asyncio
    async def test_port_never_pruned(self, client, config_redis):
        """PORT keys absent from the composite are left in place."""
        assert "PORT" in PLATFORM_MERGE_TABLES
        await config_redis.hset("PORT|Ethernet0", mapping={"lanes": "0"})
        await config_redis.hset("PORT|Ethernet4", mapping={"lanes": "4"})
        removed = await client.replace_all([Entry("PORT", "Ethernet0", {"mtu": "9100"})])
        assert removed == 0
        assert await client.exists("PORT", "Ethernet4") is True

    @pytest.mark.asyncio
    async def test_rejected_composite_keeps_stale_keys(self, client, config_redis):
        """A composite that cannot be written does not prune anything either."""
        await config_redis.hset("VLAN|Vlan300", mapping={"vlanid": "300"})
        await config_redis.set("VLAN|Vlan100", "string-not-hash")
        with pytest.raises(TransactionError):
            await client.replace_all([
                Entry("VLAN", "Vlan100", {"vlanid": "100"}),
                Entry("VLAN", "Vlan200", {"vlanid": "200"}),
            ])
        assert await client.exists("VLAN", "Vlan300") is True
        assert await client.exists("VLAN", "Vlan200") is False


class TestErrors:
    """Tests for error propagation on point operations."""

    @pytest.mark.asyncio
    async def test_set_on_wrong_type_raises(self, client, config_redis):
        """Point writes are not retried or wrapped; Redis errors propagate."""
        await config_redis.set("VLAN|Vlan1", "x")
        with pytest.raises(ResponseError):
            await client.set("VLAN", "Vlan1", {"vlanid": "1"})
