"""Domain-specific errors for gattcheck."""


class GattcheckError(Exception):
    """Base error for gattcheck."""


class AdapterUnavailableError(GattcheckError):
    """Raised when the Bluetooth stack cannot be reached."""


class NoAdapterError(GattcheckError):
    """Raised when the host has no Bluetooth adapter."""


class NotInitializedError(GattcheckError):
    """Raised when a session operation runs before initialize() succeeded."""


class InvalidAddressError(GattcheckError):
    """Raised when a device address is empty or malformed."""


class DeviceNotFoundError(GattcheckError):
    """Raised when the transport cannot resolve a device address."""


class StorageUnavailableError(GattcheckError):
    """Raised when the external store cannot be read or written."""


class TransportError(GattcheckError):
    """Base transport error."""


class ProfileLoadError(GattcheckError):
    """Raised when reading a profile file fails."""


class ProfileValidationError(GattcheckError):
    """Raised when a profile does not conform to schema or semantics."""
