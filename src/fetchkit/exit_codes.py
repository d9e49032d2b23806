"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~fetchkit.exceptions.FetchkitError` subclass.
Shell wrappers can inspect the exit code of ``fetchkit request`` to
determine the failure class without parsing stderr.

Example::

    $ fetchkit request GET /users --endpoint https://a.example.com
    $ echo $?
    5   # EXIT_RETRIES_EXHAUSTED -- every attempt failed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an unusable configuration."""

EXIT_STATUS_REJECTED = 4
"""A response was received but rejected by the status validator."""

EXIT_RETRIES_EXHAUSTED = 5
"""Every attempt within the retry budget failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CANCELLED = 130
"""The request was cancelled before it completed."""
