"""Custom exceptions for the load testing engine."""


class LoadTestError(Exception):
    """Base exception for load test failures."""
    pass


class ConfigurationError(LoadTestError):
    """Raised when a run cannot start because its configuration is unusable."""
    pass


class FatalError(LoadTestError):
    """Raised by loggers that do not terminate the process on error()."""
    pass


class StorageError(LoadTestError):
    """Raised when a storage backend cannot be prepared."""
    pass
