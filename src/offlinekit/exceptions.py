"""Exception hierarchy for offlinekit.

All exceptions inherit from :class:`OfflinekitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`offlinekit.exit_codes`.
The CLI entry point in :func:`offlinekit.app.main` catches
``OfflinekitError`` and exits with the appropriate code.

Inside the engine only :class:`TransportError` travels between components:
strategies catch it to fall back to the cache or the offline page. Storage
failures are absorbed by :class:`~offlinekit.cache.store.CacheStore` and never
reach a request caller.

Subclass hierarchy::

    OfflinekitError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- StorageError        (exit 3)
    +-- LifecycleError      (exit 4)
    +-- QueueError          (exit 5)
    +-- TransportError      (exit 6)
    +-- ConfigError         (exit 1)
"""

from offlinekit.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LIFECYCLE_ERROR,
    EXIT_QUEUE_ERROR,
    EXIT_STORAGE_ERROR,
    EXIT_TRANSPORT_ERROR,
)


class OfflinekitError(Exception):
    """Base exception for all offlinekit errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OfflinekitError):
    """Raised for invalid CLI arguments or malformed control messages."""

    exit_code = EXIT_INVALID_USAGE


class StorageError(OfflinekitError):
    """Raised when durable storage fails outside the best-effort cache path."""

    exit_code = EXIT_STORAGE_ERROR


class LifecycleError(OfflinekitError):
    """Raised when a generation transition is not allowed."""

    exit_code = EXIT_LIFECYCLE_ERROR


class QueueError(OfflinekitError):
    """Raised when a sync queue operation references a missing queue or item."""

    exit_code = EXIT_QUEUE_ERROR


class TransportError(OfflinekitError):
    """Raised when no HTTP response was received (timeout, DNS, connection refused).

    HTTP error statuses are *not* transport errors; a 404 or 503 returned by
    the server is a normal response.
    """

    exit_code = EXIT_TRANSPORT_ERROR


class ConfigError(OfflinekitError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE
