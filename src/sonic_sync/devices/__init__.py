"""Device handlers."""
from dataclasses import fields

from .base import NetworkDevice, DeviceProfile
from .sonic import SonicDevice

__all__ = [
    "NetworkDevice",
    "DeviceProfile",
    "SonicDevice",
]

# Device type registry
DEVICE_TYPES = {
    "sonic": SonicDevice,
}


def create_device(device_id: str, config: dict, **kwargs) -> NetworkDevice:
    """Factory function to create device instances.

    Extra keyword arguments (redis_factory, tunnel_factory) are passed to
    the handler.
    """
    device_type = config.get("type", "sonic").lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    known = {f.name for f in fields(DeviceProfile)}
    unknown = sorted(set(config) - known)
    if unknown:
        raise ValueError(f"Unknown setting(s) for device {device_id}: {', '.join(unknown)}")

    device_class = DEVICE_TYPES[device_type]
    profile = dict(config)
    profile.setdefault("name", device_id)
    profile["type"] = device_type
    return device_class(device_id, DeviceProfile(**profile), **kwargs)
