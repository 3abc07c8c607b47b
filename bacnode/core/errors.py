"""Domain-specific errors for bacnode."""


class BacnodeError(Exception):
    """Base error for bacnode."""


class ConfigError(BacnodeError):
    """Raised when a local device configuration is invalid or unresolvable."""


class BackupValidationError(ConfigError):
    """Raised when a backup file does not conform to schema or semantics."""


class BindError(BacnodeError):
    """Raised when the local device cannot bind its port."""


class NotInitializedError(BacnodeError):
    """Raised when an operation needs an initialized local device."""


class NotFoundError(BacnodeError):
    """Raised when a local object or remote device is absent."""


class NoBackupError(BacnodeError):
    """Raised when restoring while no backup was ever saved."""


class TransportError(BacnodeError):
    """Raised when a transport adapter cannot be loaded or used."""
