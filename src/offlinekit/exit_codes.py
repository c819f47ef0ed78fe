"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~offlinekit.exceptions.OfflinekitError` subclass.

Example::

    $ offlinekit fetch https://example.com/api/matches
    $ echo $?
    6   # EXIT_TRANSPORT_ERROR -- no network path and nothing cached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_STORAGE_ERROR = 3
"""The durable cache or queue storage could not be read or written."""

EXIT_LIFECYCLE_ERROR = 4
"""A generation transition was rejected (e.g. installing an older version)."""

EXIT_QUEUE_ERROR = 5
"""A sync queue operation referenced an unknown queue or item."""

EXIT_TRANSPORT_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
