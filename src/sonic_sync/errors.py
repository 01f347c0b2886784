"""Exception hierarchy for SONiC device operations.

Every failure a caller can act on has its own type, so orchestration code can
decide between retrying, escalating, or treating a condition as "capability
absent on this platform" without parsing messages.
"""
from typing import Optional


class SonicSyncError(Exception):
    """Base class for all sonic-sync errors."""


class PreconditionError(SonicSyncError):
    """An operation was attempted while a required condition did not hold."""

    def __init__(self, operation: str, resource: str, precondition: str, details: str = ""):
        self.operation = operation
        self.resource = resource
        self.precondition = precondition
        self.details = details
        msg = f"{operation} on {resource}: precondition failed: {precondition}"
        if details:
            msg += f" ({details})"
        super().__init__(msg)


class NotConnectedError(PreconditionError):
    """Device is not connected."""

    def __init__(self, resource: str, operation: str = "operation"):
        super().__init__(operation, resource, "device must be connected")


class NotLockedError(PreconditionError):
    """Device must be locked before mutating it."""

    def __init__(self, resource: str, operation: str = "operation"):
        super().__init__(
            operation, resource, "device must be locked for changes", "use lock() first"
        )


class ConnectionFailedError(SonicSyncError):
    """The primary configuration channel could not be established."""


class SubsystemUnavailableError(SonicSyncError):
    """An auxiliary database or transport is not available on this device."""

    def __init__(self, subsystem: str, device: str, reason: str = ""):
        self.subsystem = subsystem
        self.device = device
        msg = f"{subsystem} not connected on {device}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LockError(SonicSyncError):
    """Lock operation failed at the store level."""


class DeviceLockedError(LockError):
    """Device is already locked by another holder."""

    def __init__(self, device: str, holder: Optional[str] = None):
        self.device = device
        self.holder = holder
        msg = f"device {device} is already locked"
        if holder:
            msg += f" by {holder}"
        super().__init__(msg)


class LockHolderMismatchError(LockError):
    """Release was attempted by someone other than the current holder."""

    def __init__(self, device: str, holder: str):
        self.device = device
        self.holder = holder
        super().__init__(f"lock holder mismatch for {device} (release by {holder})")


class TransactionError(SonicSyncError):
    """A batched write was rejected; nothing from the batch was applied."""


class NotFoundError(SonicSyncError):
    """A requested entry is not present in the database."""


class AsicResolutionError(SonicSyncError):
    """ASIC_DB object graph could not be anchored (switch or VR OID)."""


class CommandError(SonicSyncError):
    """A remote shell command failed, timed out, or was cancelled."""

    def __init__(self, command: str, message: str, output: str = ""):
        self.command = command
        self.output = output
        super().__init__(f"SSH exec '{command}': {message}")


class TunnelError(SonicSyncError):
    """SSH tunnel could not be opened."""


class PlatformValidationError(SonicSyncError):
    """Port or breakout request does not match the device's platform.json."""
