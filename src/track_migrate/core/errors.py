"""
Structured error types for track-migrate.

Every failure the engine can produce is a typed ``MigrateError`` carrying
the category it belongs to, the phase that was running, and the migration
unit involved (when there is one). The CLI renders these fields directly so
an operator can localize the fix without reading a traceback.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind
    - **No automatic retry:** Every error is fatal for the invocation
    - **Rich Context:** Errors carry phase, track, and unit
    - **Error Chaining:** Preserve the original exception as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       MigrateError                               │
        │              (category, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  MalformedNameError   DirectoryNotFoundError   DiscoveryError   │
        │  (PARSE)              (SOURCE)                 (SOURCE)         │
        │                                                                  │
        │  ConnectionInvalidError   ClientError                           │
        │  (CONFIG)                 (CLIENT)                              │
        │                                                                  │
        │  ValidationFailedError    AlreadyAppliedError                   │
        │  (VALIDATION)             (INTEGRITY)                           │
        │                                                                  │
        │  ExecutionFailedError                                           │
        │  (EXECUTION)                                                    │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = DiscoveryError("mixed tracks").with_context(directory="db/core")
    >>> error.context.directory
    'db/core'
    >>> error.to_dict()["category"]
    'SOURCE'

Guardrails:
    ❌ DON'T: Catch MigrateError and continue the batch
    ✅ DO: Let it abort the invocation and surface to the operator

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, track-migrate

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    # Migration source errors
    PARSE = "PARSE"               # Filename does not follow the naming scheme
    SOURCE = "SOURCE"             # Directory missing, mixed or orphaned files

    # Environment errors
    CONFIG = "CONFIG"             # Missing connection parameters, failed probe
    CLIENT = "CLIENT"             # psql binary missing or query failed

    # Batch errors
    VALIDATION = "VALIDATION"     # A pre-flight artifact vetoed the batch
    INTEGRITY = "INTEGRITY"       # Unique constraint on migration_name tripped
    EXECUTION = "EXECUTION"       # Combined script aborted and rolled back

    INTERNAL = "INTERNAL"         # Bugs, unexpected state


class Phase(str, Enum):
    """Pipeline phase that was running when an error was raised."""

    DISCOVERING = "discovering"
    PLANNING = "planning"
    VALIDATING = "validating"
    EXECUTING = "executing"
    REPORTING = "reporting"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a ``MigrateError``.

    Only fields that are set are emitted by ``to_dict()``; anything that is
    not one of the typed fields lands in ``metadata``.
    """

    phase: Phase | None = None
    track: str | None = None
    migration: str | None = None
    directory: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["phase", "track", "migration", "directory"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value.value if isinstance(value, Enum) else value
        if self.metadata:
            result.update(self.metadata)
        return result


class MigrateError(Exception):
    """
    Base exception for all track-migrate errors.

    Subclasses set ``default_category``; instances carry an ``ErrorContext``
    that callers enrich with ``with_context()`` as the error travels up
    through the pipeline phases.

    Examples:
        >>> error = MigrateError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> try:
        ...     raise PermissionError("permission denied")
        ... except PermissionError as e:
        ...     error = MigrateError("cannot read payload", cause=e)
        >>> error.cause
        PermissionError('permission denied')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MigrateError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DiscoveryError("bad file").with_context(
                phase=Phase.DISCOVERING,
                directory="db/core",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def describe(self) -> str:
        """One-line operator summary: category, phase, unit, message."""
        parts = [self.category.value]
        if self.context.phase is not None:
            parts.append(self.context.phase.value)
        if self.context.track:
            parts.append(f"track={self.context.track}")
        if self.context.migration:
            parts.append(f"migration={self.context.migration}")
        return f"[{' '.join(parts)}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class MalformedNameError(MigrateError):
    """A filename does not follow ``{timestamp}_{track}_{description}.{ext}``."""

    default_category = ErrorCategory.PARSE

    def __init__(self, filename: str, reason: str, **kwargs: Any):
        self.filename = filename
        self.reason = reason
        shown = filename if filename else "<empty>"
        super().__init__(f"Malformed migration name {shown!r}: {reason}", **kwargs)


class DirectoryNotFoundError(MigrateError):
    """The migration directory does not exist."""

    default_category = ErrorCategory.SOURCE

    def __init__(self, directory: str, **kwargs: Any):
        self.directory = directory
        super().__init__(f"Migration directory not found: {directory}", **kwargs)
        self.context.directory = directory


class DiscoveryError(MigrateError):
    """The directory contents cannot be turned into a trustworthy catalog."""

    default_category = ErrorCategory.SOURCE


# =============================================================================
# ENVIRONMENT ERRORS
# =============================================================================


class ConnectionInvalidError(MigrateError):
    """Connection parameters are missing or the liveness probe failed."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, message: str, *, missing: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.missing = missing or []


class ClientError(MigrateError):
    """The external SQL client could not be run or a read query failed."""

    default_category = ErrorCategory.CLIENT

    def __init__(self, message: str, *, stderr: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.stderr = stderr


# =============================================================================
# BATCH ERRORS
# =============================================================================


class ValidationFailedError(MigrateError):
    """A validation artifact signaled failure; the whole batch is vetoed."""

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        migration: str,
        reason: str,
        *,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ):
        self.migration = migration
        self.reason = reason
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Validation failed for {migration}: {reason}", **kwargs)
        self.context.migration = migration
        self.context.phase = Phase.VALIDATING


class AlreadyAppliedError(MigrateError):
    """A bookkeeping insert hit the unique constraint on ``migration_name``.

    Signals a lost race against a concurrent invocation (or a planner bug).
    The enclosing transaction was rolled back.
    """

    default_category = ErrorCategory.INTEGRITY

    def __init__(self, track: str, detail: str, **kwargs: Any):
        self.detail = detail
        super().__init__(
            f"Migration already recorded for track {track!r}; "
            f"another invocation may have applied it concurrently: {detail}",
            **kwargs,
        )
        self.context.track = track
        self.context.phase = Phase.EXECUTING


class ExecutionFailedError(MigrateError):
    """The combined script aborted; the entire batch was rolled back."""

    default_category = ErrorCategory.EXECUTION

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.returncode is not None:
            result["returncode"] = self.returncode
        if self.stderr:
            result["stderr"] = self.stderr
        return result


__all__ = [
    "ErrorCategory",
    "Phase",
    "ErrorContext",
    "MigrateError",
    "MalformedNameError",
    "DirectoryNotFoundError",
    "DiscoveryError",
    "ConnectionInvalidError",
    "ClientError",
    "ValidationFailedError",
    "AlreadyAppliedError",
    "ExecutionFailedError",
]
