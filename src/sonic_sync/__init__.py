"""SONiC device communication and state synchronization over Redis."""
from .devices import DEVICE_TYPES, DeviceProfile, SonicDevice, create_device
from .types import ChangeType, ConfigChange, Entry, VerificationResult

__version__ = "0.1.0"

__all__ = [
    "DEVICE_TYPES",
    "DeviceProfile",
    "SonicDevice",
    "create_device",
    "ChangeType",
    "ConfigChange",
    "Entry",
    "VerificationResult",
]
