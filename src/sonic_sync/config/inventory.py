"""Switch inventory loaded from devices.yaml."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..devices import DEVICE_TYPES, NetworkDevice, create_device

logger = logging.getLogger(__name__)

INVENTORY_ENV = "SONIC_SYNC_DEVICES"

SEARCH_PATHS = (
    Path("configs") / "devices.yaml",
    Path("devices.yaml"),
    Path.home() / ".config" / "sonic-sync" / "devices.yaml",
    Path("/etc/sonic-sync/devices.yaml"),
)


class DeviceInventory:
    """Switches and groups from a YAML inventory.

    ```yaml
    defaults:
      ssh_user: admin
      ssh_password_env: SONIC_SSH_PASSWORD
    devices:
      leaf1:
        host: 10.0.0.11
      leaf2:
        host: 10.0.0.12
        platform: x86_64-accton_as7726_32x-r0
    groups:
      leaves: [leaf1, leaf2]
    ```

    Handlers are created lazily and cached, so every caller shares one
    SonicDevice (and one lock holder) per switch. Keyword arguments are
    handed to each handler, which is how tests inject redis and tunnel
    factories.
    """

    def __init__(self, config_path: Optional[str] = None, **device_kwargs):
        self.config_path = config_path or self._find_config()
        self._device_kwargs = device_kwargs
        self._devices: dict[str, NetworkDevice] = {}
        self._profiles: dict[str, dict] = {}
        self._groups: dict[str, list[str]] = {}
        self._load_config()

    @staticmethod
    def _find_config() -> str:
        env_path = os.environ.get(INVENTORY_ENV)
        if env_path:
            return env_path
        for path in SEARCH_PATHS:
            if path.exists():
                return str(path)
        raise FileNotFoundError(
            f"No devices.yaml found; set {INVENTORY_ENV} or create configs/devices.yaml"
        )

    def _load_config(self) -> None:
        with open(self.config_path) as f:
            raw = yaml.safe_load(f) or {}

        defaults = raw.get("defaults") or {}
        for device_id, settings in (raw.get("devices") or {}).items():
            profile = dict(defaults)
            profile.update(settings or {})
            device_type = str(profile.get("type", "sonic")).lower()
            if device_type not in DEVICE_TYPES:
                logger.warning(f"Device '{device_id}' has unsupported type '{device_type}'")
            self._profiles[device_id] = profile

        for group_name, members in (raw.get("groups") or {}).items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device IDs")
                continue
            for device_id in members:
                if device_id not in self._profiles:
                    logger.warning(f"Group '{group_name}' references unknown device: {device_id}")
            self._groups[group_name] = list(members)

        logger.debug(
            f"Loaded {len(self._profiles)} devices and {len(self._groups)} groups from {self.config_path}"
        )

    def get_device_ids(self) -> list[str]:
        return list(self._profiles)

    def get_device_config(self, device_id: str) -> dict:
        """Merged settings for ``device_id`` (defaults overlaid by its own)."""
        try:
            return self._profiles[device_id]
        except KeyError:
            raise KeyError(f"Unknown device: {device_id}") from None

    def get_device(self, device_id: str) -> NetworkDevice:
        """The cached handler for ``device_id``, created on first use."""
        device = self._devices.get(device_id)
        if device is None:
            device = create_device(device_id, self.get_device_config(device_id), **self._device_kwargs)
            self._devices[device_id] = device
        return device

    def get_all_devices(self) -> dict[str, NetworkDevice]:
        return {device_id: self.get_device(device_id) for device_id in self._profiles}

    async def close_all(self) -> None:
        """Disconnect every connected handler; locks they hold are released."""
        for device in self._devices.values():
            if device.is_connected:
                await device.disconnect()
        self._devices.clear()

    # Groups

    def get_group_names(self) -> list[str]:
        return list(self._groups)

    def get_group_members(self, group_name: str) -> list[str]:
        """Device IDs in ``group_name``; KeyError for an unknown group."""
        try:
            return list(self._groups[group_name])
        except KeyError:
            raise KeyError(f"Unknown group: {group_name}") from None

    def get_devices_in_group(self, group_name: str) -> list[NetworkDevice]:
        return [self.get_device(device_id) for device_id in self.get_group_members(group_name)]

    def get_device_groups(self, device_id: str) -> list[str]:
        return [name for name, members in self._groups.items() if device_id in members]
