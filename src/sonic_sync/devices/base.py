"""Base device abstraction for SONiC switches."""
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..types import REDIS_PORT


@dataclass
class DeviceProfile:
    """Connection settings for one switch."""
    name: str
    host: str
    type: str = "sonic"
    ssh_user: str = ""
    ssh_password: Optional[str] = None
    ssh_password_env: str = "SONIC_SSH_PASSWORD"
    ssh_port: int = 22
    redis_port: int = REDIS_PORT
    timeout: int = 30
    connect_retries: int = 3
    platform: str = ""

    def get_password(self) -> str:
        """The profile password, else the one in ``ssh_password_env``."""
        if self.ssh_password:
            return self.ssh_password
        return os.environ.get(self.ssh_password_env, "")

    @property
    def has_ssh_credentials(self) -> bool:
        """Tunnel through SSH only when both user and password are known."""
        return bool(self.ssh_user and self.get_password())


class NetworkDevice(ABC):
    """Abstract base class for device handlers."""

    def __init__(self, device_id: str, config: DeviceProfile):
        self.device_id = device_id
        self.config = config
        self._connected = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> bool:
        """Open every channel the handler needs and load its state."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release held resources and close every channel."""
        pass

    @abstractmethod
    async def reload(self) -> None:
        """Re-read the device's databases into the local mirror."""
        pass

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
