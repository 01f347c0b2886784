"""SONiC device handler.

A SonicDevice owns everything needed to talk to one switch: the optional SSH
tunnel, one Redis client per database, the cached CONFIG_DB/STATE_DB
snapshots and the DeviceState derived from them. CONFIG_DB is the only
mandatory channel; STATE_DB, APPL_DB and ASIC_DB degrade to "unavailable"
and report it at first use.

Local access is guarded by a reader/writer lock. Cross-process exclusion is
the STATE_DB lock (see :mod:`sonic_sync.lock`), which every mutating operation
requires.
"""
import logging
from typing import Callable, Iterable, Optional

from redis.exceptions import RedisError

from ..appdb import AppDBClient
from ..asicdb import AsicDBClient
from ..configdb.client import ConfigDBClient
from ..configdb.registry import ConfigDBSnapshot
from ..errors import (
    AsicResolutionError,
    CommandError,
    ConnectionFailedError,
    LockError,
    NotConnectedError,
    NotFoundError,
    NotLockedError,
    PlatformValidationError,
    PreconditionError,
    SubsystemUnavailableError,
    TunnelError,
)
from ..lock import DeviceLockManager, LockRecord
from ..platform import PLATFORM_JSON_PATH, PlatformConfig, PortDefinition
from ..state import (
    BGPNeighborState,
    DeviceState,
    EVPNState,
    InterfaceState,
    InterfaceSummary,
    PortChannelState,
    VLANState,
    VRFState,
    neighbor_key,
    populate_device_state,
)
from ..statedb.client import StateDBClient
from ..statedb.registry import StateDBSnapshot
from ..tunnel import SSHTunnel
from ..types import (
    APPL_DB,
    ASIC_DB,
    CONFIG_DB,
    STATE_DB,
    ConfigChange,
    Entry,
    NeighEntry,
    RouteEntry,
    VerificationResult,
)
from ..utils.connection import RedisFactory, open_redis
from ..utils.logging_config import device_logger, timed, timed_section
from ..utils.rwlock import RWLock
from ..verify import ChangeVerifier
from .base import DeviceProfile, NetworkDevice

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 300

SAVE_CONFIG_CMD = "sudo config save -y"
RELOAD_CONFIG_CMD = "sudo config reload -y"
RESTART_SERVICE_CMD = "sudo systemctl restart {name}"
READ_MAC_CMD = (
    "sudo python3 -c 'import json; d=json.load(open(\"/etc/sonic/config_db.json\")); "
    "print(d.get(\"DEVICE_METADATA\",{}).get(\"localhost\",{}).get(\"mac\",\"\"))' 2>/dev/null"
)
CLEAR_BGP_SOFT_CMD = "vtysh -c 'clear bgp * soft'"

# Errors that mean a database channel is unusable
_CHANNEL_ERRORS = (RedisError, OSError)

TunnelFactory = Callable[[DeviceProfile], SSHTunnel]


def default_tunnel(profile: DeviceProfile) -> SSHTunnel:
    return SSHTunnel(
        profile.host,
        profile.ssh_user,
        profile.get_password(),
        port=profile.ssh_port,
        timeout=profile.timeout,
        retries=profile.connect_retries,
    )


class SonicDevice(NetworkDevice):
    """Handler for a SONiC switch driven through its Redis databases."""

    def __init__(
        self,
        device_id: str,
        config: DeviceProfile,
        redis_factory: Optional[RedisFactory] = None,
        tunnel_factory: TunnelFactory = default_tunnel,
    ):
        super().__init__(device_id, config)
        self._redis_factory = redis_factory or self._default_redis
        self._tunnel_factory = tunnel_factory
        self._rw = RWLock()
        self.log = device_logger(config.name, __name__)

        self._tunnel: Optional[SSHTunnel] = None
        self._addr: tuple[str, int] = (config.host, config.redis_port)
        self._client: Optional[ConfigDBClient] = None
        self._state_client: Optional[StateDBClient] = None
        self._appl_client: Optional[AppDBClient] = None
        self._asic_client: Optional[AsicDBClient] = None
        self._lock_manager: Optional[DeviceLockManager] = None
        self._unavailable: dict[str, str] = {}

        self._locked = False
        self._lock_holder = ""

        self.config_db: Optional[ConfigDBSnapshot] = None
        self.state_db: Optional[StateDBSnapshot] = None
        self.state = DeviceState()
        self.platform_config: Optional[PlatformConfig] = None

    def _default_redis(self, host: str, port: int, db: int):
        return open_redis(host, port, db, timeout=self.config.timeout)

    def _open(self, db: int):
        host, port = self._addr
        return self._redis_factory(host, port, db)

    # === Accessors ===

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def client(self) -> Optional[ConfigDBClient]:
        return self._client

    @property
    def state_client(self) -> Optional[StateDBClient]:
        return self._state_client

    @property
    def tunnel(self) -> Optional[SSHTunnel]:
        return self._tunnel

    @property
    def redis_addr(self) -> tuple[str, int]:
        """Address the Redis clients dial: the tunnel's local end or the switch itself."""
        return self._addr

    def unavailable_reason(self, subsystem: str) -> str:
        return self._unavailable.get(subsystem, "")

    # === Connection management ===

    @timed("connect")
    async def connect(self) -> bool:
        """Connect to every database, load the snapshots and build DeviceState.

        CONFIG_DB failures abort with ConnectionFailedError. STATE_DB, APPL_DB
        and ASIC_DB failures are logged and leave that subsystem unavailable.
        """
        async with self._rw.write():
            if self._connected:
                return True

            if self.config.has_ssh_credentials:
                tunnel = self._tunnel_factory(self.config)
                try:
                    await tunnel.open()
                except TunnelError as e:
                    raise ConnectionFailedError(f"SSH tunnel to {self.name}: {e}") from e
                self._tunnel = tunnel
                self._addr = tunnel.local_addr
            else:
                self._addr = (self.config.host, self.config.redis_port)
                self._unavailable["SSH"] = "no SSH credentials configured"

            client = ConfigDBClient(self._open(CONFIG_DB), self.name)
            try:
                await client.connect()
                config_db = await client.get_all()
            except _CHANNEL_ERRORS as e:
                await client.close()
                await self._close_tunnel()
                raise ConnectionFailedError(f"connecting to config_db on {self.name}: {e}") from e
            self._client = client
            self.config_db = config_db

            await self._connect_state_db()
            self.state = populate_device_state(self.config_db, self.state_db)

            appl = AppDBClient(self._open(APPL_DB), self.name)
            if await self._connect_aux("APPL_DB", appl, logging.WARNING):
                self._appl_client = appl

            # Expected to fail on virtual platforms with no real ASIC
            asic = AsicDBClient(self._open(ASIC_DB), self.name)
            if await self._connect_aux("ASIC_DB", asic, logging.DEBUG):
                self._asic_client = asic

            self._connected = True
            self.log.info("Connected")
            return True

    async def _connect_aux(self, subsystem: str, client, level: int) -> bool:
        try:
            await client.connect()
        except (*_CHANNEL_ERRORS, AsicResolutionError) as e:
            self.log.log(level, f"Failed to connect to {subsystem.lower()}: {e}")
            self._unavailable[subsystem] = str(e)
            await client.close()
            return False
        return True

    async def _connect_state_db(self) -> None:
        state = StateDBClient(self._open(STATE_DB), self.name)
        if not await self._connect_aux("STATE_DB", state, logging.WARNING):
            return
        self._state_client = state
        self._lock_manager = DeviceLockManager(state.client, self.name)
        try:
            self.state_db = await state.get_all()
        except _CHANNEL_ERRORS as e:
            self.log.warning(f"Failed to load state_db: {e}")

    async def _close_tunnel(self) -> None:
        if self._tunnel is not None:
            await self._tunnel.close()
            self._tunnel = None

    async def disconnect(self) -> None:
        """Release a held lock, close every client, then the tunnel."""
        async with self._rw.write():
            if not self._connected:
                return

            if self._locked:
                await self._release_lock()

            for client in (self._client, self._state_client, self._appl_client, self._asic_client):
                if client is not None:
                    await client.close()
            self._client = None
            self._state_client = None
            self._appl_client = None
            self._asic_client = None
            self._lock_manager = None
            self._unavailable.clear()

            await self._close_tunnel()
            self._connected = False
            self.log.info("Disconnected")

    @timed("reload")
    async def reload(self) -> None:
        """Re-read CONFIG_DB (and STATE_DB if available), then rebuild DeviceState."""
        async with self._rw.write():
            self.require_connected("reload")
            await self._refresh()

    async def _refresh(self) -> None:
        self.config_db = await self._client.get_all()
        if self._state_client is not None:
            try:
                self.state_db = await self._state_client.get_all()
            except _CHANNEL_ERRORS as e:
                self.log.warning(f"Failed to reload state_db: {e}")
        self.state = populate_device_state(self.config_db, self.state_db)

    def require_connected(self, operation: str = "operation") -> None:
        if not self._connected:
            raise NotConnectedError(self.name, operation)

    def require_locked(self, operation: str = "operation") -> None:
        self.require_connected(operation)
        if not self._locked:
            raise NotLockedError(self.name, operation)

    def _require_state_client(self) -> StateDBClient:
        if self._state_client is None:
            raise SubsystemUnavailableError("STATE_DB", self.name, self.unavailable_reason("STATE_DB"))
        return self._state_client

    def _require_tunnel(self) -> SSHTunnel:
        if self._tunnel is None:
            raise SubsystemUnavailableError("SSH", self.name, "no SSH credentials configured")
        return self._tunnel

    # === Distributed lock ===

    async def lock(self, holder: str, ttl_seconds: int = DEFAULT_LOCK_TTL) -> None:
        """Acquire the STATE_DB lock and refresh the cached snapshots.

        A no-op when this handle already holds the lock. Another holder raises
        DeviceLockedError.
        """
        async with self._rw.write():
            self.require_connected("lock")
            if self._locked:
                return
            if self._lock_manager is None:
                raise SubsystemUnavailableError(
                    "STATE_DB", self.name, "distributed lock needs state_db"
                )
            await self._lock_manager.acquire(holder, ttl_seconds)
            self._locked = True
            self._lock_holder = holder
            self.log.debug(f"Lock acquired by {holder}")

            # A write episode starts from what is on the device now
            try:
                await self._refresh()
            except _CHANNEL_ERRORS:
                await self._release_lock()
                raise

    async def unlock(self) -> None:
        async with self._rw.write():
            if self._locked:
                await self._release_lock()

    async def _release_lock(self) -> None:
        if self._lock_manager is not None and self._lock_holder:
            try:
                await self._lock_manager.release(self._lock_holder)
            except LockError as e:
                self.log.warning(f"Failed to release lock: {e}")
        self._locked = False
        self._lock_holder = ""
        self.log.debug("Lock released")

    async def lock_holder(self) -> Optional[LockRecord]:
        """Who holds the device lock right now, from any process."""
        async with self._rw.read():
            if self._lock_manager is None:
                raise SubsystemUnavailableError("STATE_DB", self.name, self.unavailable_reason("STATE_DB"))
            return await self._lock_manager.holder()

    # === State reads ===

    async def get_interface(self, name: str) -> InterfaceState:
        async with self._rw.read():
            self.require_connected("get interface")
            intf = self.state.interfaces.get(name)
            if intf is None:
                raise NotFoundError(f"interface {name} not found")
            return intf

    async def get_port_channel(self, name: str) -> PortChannelState:
        async with self._rw.read():
            self.require_connected("get port channel")
            pc = self.state.port_channels.get(name)
            if pc is None:
                raise NotFoundError(f"port channel {name} not found")
            return pc

    async def get_vlan(self, vlan_id: int) -> VLANState:
        async with self._rw.read():
            self.require_connected("get vlan")
            vlan = self.state.vlans.get(vlan_id)
            if vlan is None:
                raise NotFoundError(f"VLAN {vlan_id} not found")
            return vlan

    async def get_vrf(self, name: str) -> VRFState:
        async with self._rw.read():
            self.require_connected("get vrf")
            vrf = self.state.vrfs.get(name)
            if vrf is None:
                raise NotFoundError(f"VRF {name} not found")
            return vrf

    async def list_interfaces(self) -> list[str]:
        async with self._rw.read():
            return sorted(self.state.interfaces)

    async def list_port_channels(self) -> list[str]:
        async with self._rw.read():
            return sorted(self.state.port_channels)

    async def list_vlans(self) -> list[int]:
        async with self._rw.read():
            return sorted(self.state.vlans)

    async def list_vrfs(self) -> list[str]:
        async with self._rw.read():
            return sorted(self.state.vrfs)

    async def interface_has_service(self, name: str) -> bool:
        async with self._rw.read():
            intf = self.state.interfaces.get(name)
            return intf is not None and bool(intf.service)

    async def interface_is_lag_member(self, name: str) -> bool:
        return bool(await self.get_interface_lag(name))

    async def get_interface_lag(self, name: str) -> str:
        """Parent PortChannel of ``name``, or "" if it is not a member."""
        async with self._rw.read():
            if self.config_db is None:
                return ""
            for key in self.config_db.portchannel_member:
                lag, sep, member = key.partition("|")
                if sep and member == name:
                    return lag
            return ""

    async def get_interface_summary(self) -> list[InterfaceSummary]:
        async with self._rw.read():
            self.require_connected("get interface summary")
            return [
                InterfaceSummary(
                    name=intf.name,
                    admin_status=intf.admin_status,
                    speed=intf.speed,
                    ip_address=intf.ip_addresses[0] if intf.ip_addresses else "",
                    vrf=intf.vrf,
                    service=intf.service,
                    lag_member=intf.lag_member,
                )
                for _, intf in sorted(self.state.interfaces.items())
            ]

    async def get_interface_oper_state(self, name: str) -> str:
        async with self._rw.read():
            if self.state_db is None:
                raise SubsystemUnavailableError("STATE_DB", self.name, "state_db not loaded")
            port = self.state_db.port_table.get(name)
            if port is None:
                raise NotFoundError(f"interface {name} not found in state_db")
            return port.oper_status

    async def get_bgp_neighbor_oper_state(self, neighbor: str, vrf: str = "default") -> BGPNeighborState:
        async with self._rw.read():
            nbr = self.state.bgp.neighbors.get(neighbor_key(vrf, neighbor))
            if nbr is None:
                raise NotFoundError(f"BGP neighbor {neighbor} (vrf {vrf or 'default'}) not found")
            return nbr

    async def get_evpn_state(self) -> EVPNState:
        async with self._rw.read():
            return self.state.evpn

    async def has_state_db(self) -> bool:
        async with self._rw.read():
            return self.state_db is not None

    async def get_neighbor(self, interface: str, ip: str) -> Optional[NeighEntry]:
        """Live ARP/NDP lookup in STATE_DB; None when the entry is absent."""
        async with self._rw.read():
            self.require_connected("get neighbor")
            return await self._require_state_client().get_neighbor(interface, ip)

    # === Writes ===

    @timed("apply_changes")
    async def apply_changes(self, changes: Iterable[ConfigChange]) -> None:
        """Write ``changes`` to CONFIG_DB in one transaction.

        This is a pure write: the cached snapshot is not refreshed. The next
        lock() or reload() picks the changes up.
        """
        await self.apply_entries([change.to_entry() for change in changes])

    async def apply_entries(self, entries: Iterable[Entry]) -> None:
        async with self._rw.write():
            self.require_locked("apply changes")
            entries = list(entries)
            async with timed_section("pipeline_set", device_id=self.device_id, entries=len(entries)):
                await self._client.pipeline_set(entries)

    @timed("replace_all")
    async def replace_all(self, entries: Iterable[Entry]) -> int:
        """Make ``entries`` authoritative for their tables; returns stale keys removed."""
        async with self._rw.write():
            self.require_locked("replace all")
            return await self._client.replace_all(entries)

    # === Verification and routes ===

    async def _fresh_config_client(self) -> ConfigDBClient:
        client = ConfigDBClient(self._open(CONFIG_DB), self.name)
        try:
            await client.connect()
        except _CHANNEL_ERRORS:
            await client.close()
            raise
        return client

    @timed("verify")
    async def verify_changes(self, changes: Iterable[ConfigChange]) -> VerificationResult:
        """Re-read CONFIG_DB over a new connection and compare against ``changes``."""
        async with self._rw.read():
            self.require_connected("verify changes")
            verifier = ChangeVerifier(self._fresh_config_client, self.name)
            return await verifier.verify(list(changes))

    async def get_route(self, vrf: str, prefix: str) -> Optional[RouteEntry]:
        """Control-plane route from APPL_DB; None if absent. Never polls."""
        async with self._rw.read():
            self.require_connected("get route")
            if self._appl_client is None:
                raise SubsystemUnavailableError("APPL_DB", self.name, self.unavailable_reason("APPL_DB"))
            return await self._appl_client.get_route(vrf, prefix)

    async def get_route_asic(self, vrf: str, prefix: str) -> Optional[RouteEntry]:
        """Route as programmed in ASIC_DB; None if not programmed."""
        async with self._rw.read():
            self.require_connected("get route asic")
            if self._asic_client is None:
                raise SubsystemUnavailableError("ASIC_DB", self.name, self.unavailable_reason("ASIC_DB"))
            return await self._asic_client.get_route(vrf, prefix, self.config_db)

    # === Out-of-band commands over SSH ===

    async def _run_locked(self, operation: str, command: str) -> str:
        async with self._rw.read():
            self.require_locked(operation)
            tunnel = self._require_tunnel()
            self.log.info(f"{operation}: {command}")
            return await tunnel.exec_command(command)

    async def save_config(self) -> None:
        """Persist the running CONFIG_DB to /etc/sonic/config_db.json."""
        await self._run_locked("save config", SAVE_CONFIG_CMD)

    async def reload_config(self) -> None:
        """Make SONiC re-read config_db.json and restart its services."""
        await self._run_locked("reload config", RELOAD_CONFIG_CMD)

    async def restart_service(self, name: str) -> None:
        """Restart a SONiC service container (bgp, swss, syncd, ...)."""
        await self._run_locked(f"restart service {name}", RESTART_SERVICE_CMD.format(name=name))

    async def read_system_mac(self) -> str:
        """System MAC from /etc/sonic/config_db.json, or "" if it cannot be read."""
        async with self._rw.read():
            if self._tunnel is None:
                return ""
            try:
                output = await self._tunnel.exec_command(READ_MAC_CMD)
            except CommandError as e:
                self.log.debug(f"Reading system MAC failed: {e}")
                return ""
            return output.strip()

    def _bgp_asn(self) -> str:
        if self.config_db is None:
            return ""
        asn = self.config_db.device_metadata.get("localhost", {}).get("bgp_asn", "")
        if not asn:
            globals_ = self.config_db.bgp_globals.get("default")
            if globals_ is not None:
                asn = globals_.local_asn
        return asn

    async def apply_frr_defaults(self) -> None:
        """Set FRR runtime defaults frrcfgd cannot express through CONFIG_DB.

        Disables ebgp-requires-policy and suppress-fib-pending, and gives
        multihop neighbors ttl-security, then soft-clears BGP so suppressed
        routes are reprocessed. Needed again after every bgp container restart.
        """
        async with self._rw.read():
            self.require_locked("apply FRR defaults")
            tunnel = self._require_tunnel()
            asn = self._bgp_asn()
            if not asn:
                raise PreconditionError(
                    "apply FRR defaults", self.name, "BGP ASN must be configured",
                    "no DEVICE_METADATA bgp_asn or BGP_GLOBALS local_asn",
                )

            cmd = (
                f"vtysh -c 'configure terminal' -c 'router bgp {asn}' "
                "-c 'no bgp ebgp-requires-policy' "
                "-c 'no bgp suppress-fib-pending'"
            )
            for key, neighbor in sorted(self.config_db.bgp_neighbor.items()):
                if neighbor.ebgp_multihop != "true":
                    continue
                _, sep, address = key.partition("|")
                if sep:
                    cmd += (
                        f" -c 'neighbor {address} ttl-security hops 10'"
                        f" -c 'neighbor {address} disable-connected-check'"
                    )
            cmd += " -c 'end' -c 'write memory'"

            await tunnel.exec_command(cmd)
            try:
                await tunnel.exec_command(CLEAR_BGP_SOFT_CMD)
            except CommandError as e:
                self.log.debug(f"clear bgp soft: {e}")

    # === Platform ===

    async def load_platform_config(self) -> PlatformConfig:
        """Read and parse the switch's platform.json over SSH."""
        async with self._rw.write():
            self.require_connected("load platform config")
            tunnel = self._require_tunnel()
            platform = self.config.platform
            if not platform and self.config_db is not None:
                platform = self.config_db.device_metadata.get("localhost", {}).get("platform", "")
            if not platform:
                raise PlatformValidationError(
                    f"cannot determine platform for {self.name} (DEVICE_METADATA|localhost platform)"
                )
            text = await tunnel.read_file(PLATFORM_JSON_PATH.format(platform=platform))
            self.platform_config = PlatformConfig.from_json(text, platform)
            self.log.info(
                f"Loaded platform {platform}: {len(self.platform_config.interfaces)} ports"
            )
            return self.platform_config

    def _require_platform(self, operation: str) -> PlatformConfig:
        if self.platform_config is None:
            raise PreconditionError(
                operation, self.name, "platform config must be loaded",
                "call load_platform_config() first",
            )
        return self.platform_config

    async def validate_port(self, name: str, speed: str = "") -> PortDefinition:
        async with self._rw.read():
            return self._require_platform("validate port").validate_port(name, speed)

    async def validate_breakout(self, name: str, mode: str) -> list[str]:
        """Check a breakout mode and return the child port names it creates."""
        async with self._rw.read():
            return self._require_platform("validate breakout").child_ports(name, mode)
