class OfflineSyncError(Exception):
    """Base offline sync exception."""


class ConfigurationError(OfflineSyncError, ValueError):
    """Raised when offline sync configuration is invalid."""


class StorageError(OfflineSyncError):
    """Raised when the local key-value store cannot be read or written."""


class DeliveryError(OfflineSyncError):
    """Raised by collectors when the remote endpoint rejects or fails a delivery."""
