"""track_migrate.core -- cross-cutting primitives.

Architecture::

    errors.py      Structured error hierarchy (MigrateError + taxonomy)
    result.py      Result[T] envelope (Ok / Err / partition_results)
    hashing.py     SHA-256 content hash for applied payloads
    settings.py    MigrateSettings + ConnectionConfig (pydantic-settings)
    logging.py     Structured logging (structlog)
"""

from track_migrate.core.errors import (
    AlreadyAppliedError,
    ClientError,
    ConnectionInvalidError,
    DirectoryNotFoundError,
    DiscoveryError,
    ErrorCategory,
    ErrorContext,
    ExecutionFailedError,
    MalformedNameError,
    MigrateError,
    Phase,
    ValidationFailedError,
)
from track_migrate.core.result import Err, Ok, Result, partition_results

__all__ = [
    "AlreadyAppliedError",
    "ClientError",
    "ConnectionInvalidError",
    "DirectoryNotFoundError",
    "DiscoveryError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionFailedError",
    "MalformedNameError",
    "MigrateError",
    "Phase",
    "ValidationFailedError",
    "Err",
    "Ok",
    "Result",
    "partition_results",
]
