"""Tests for retry policy and Redis helpers."""
import pytest

from sonic_sync.utils.connection import (
    RETRYABLE_EXCEPTIONS,
    close_redis,
    scan_keys,
    with_retry,
)


class TestWithRetry:
    """Tests for the dial retry decorator."""

    @pytest.mark.asyncio
    async def test_dial_retried_until_success(self):
        """A refused dial is retried and the second attempt wins."""
        attempts = []

        @with_retry(max_attempts=3, min_wait=0.01, max_wait=0.05)
        async def dial():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionRefusedError("refused")
            return "session"

        assert await dial() == "session"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_gives_up_with_original_error(self):
        """After the last attempt the original exception is re-raised."""
        attempts = []

        @with_retry(max_attempts=2, min_wait=0.01, max_wait=0.05)
        async def dial():
            attempts.append(1)
            raise EOFError("banner")

        with pytest.raises(EOFError):
            await dial()
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        """Errors outside the retryable set fail on the first attempt."""
        attempts = []

        @with_retry(max_attempts=3)
        async def dial():
            attempts.append(1)
            raise ValueError("bad credentials format")

        with pytest.raises(ValueError):
            await dial()
        assert len(attempts) == 1

    def test_sync_functions(self):
        """Blocking callables are wrapped too."""
        @with_retry(max_attempts=2)
        def connect():
            return 42

        assert connect() == 42

    def test_network_errors_are_retryable(self):
        for exc in (ConnectionRefusedError, ConnectionResetError, TimeoutError, OSError, EOFError):
            assert exc in RETRYABLE_EXCEPTIONS


class TestScanKeys:
    """Tests for cursor-based key listing."""

    @pytest.mark.asyncio
    async def test_collects_every_page(self, config_redis):
        """Keys beyond one page are all returned."""
        for i in range(250):
            await config_redis.hset(f"VLAN|Vlan{i + 1}", mapping={"vlanid": str(i + 1)})
        await config_redis.hset("PORT|Ethernet0", mapping={"mtu": "9100"})

        keys = await scan_keys(config_redis, "VLAN|*", count=10)
        assert len(keys) == 250
        assert len(set(keys)) == 250
        assert "PORT|Ethernet0" not in keys

    @pytest.mark.asyncio
    async def test_no_match(self, config_redis):
        assert await scan_keys(config_redis, "VRF|*") == []


class TestCloseRedis:
    """Tests for client teardown."""

    @pytest.mark.asyncio
    async def test_close_logs_errors(self, caplog):
        """Teardown failures are logged rather than raised."""
        class Broken:
            async def aclose(self):
                raise ConnectionResetError("reset by peer")

        await close_redis(Broken(), "leaf1/config_db")
        assert "leaf1/config_db" in caplog.text
