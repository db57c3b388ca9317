"""
Result envelope for parse-style operations.

Provides a typed ``Result[T]`` pattern: operations that can fail in an
expected way return ``Ok[T]`` or ``Err[T]`` instead of raising, so callers
see the failure case in the signature and handle it with ``match``.

Manifesto:
    - **Explicit over Implicit:** The failure path is part of the type
    - **Batch-friendly:** Parse a whole directory, then decide what to do
      with every failure at once using ``partition_results()``

Examples:
    >>> from track_migrate.core.result import Ok, Err, Result
    >>> def parse_port(raw: str) -> Result[int]:
    ...     if not raw.isdigit():
    ...         return Err(ValueError(f"not a port: {raw}"))
    ...     return Ok(int(raw))
    >>> match parse_port("5432"):
    ...     case Ok(value):
    ...         print(value)
    ...     case Err(error):
    ...         print(error)
    5432

Tags:
    result-pattern, error-handling, functional-programming, track-migrate

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing the exception that describes the failure."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Type alias for Result
Result = Ok[T] | Err[T]


def partition_results(
    results: list[Result[T]],
) -> tuple[list[T], list[Exception]]:
    """
    Partition results into successes and failures.

    Always returns both lists; the caller decides the policy for mixed
    outcomes (discovery, for one, refuses the whole directory if any
    entry failed).

    Examples:
        >>> results = [Ok(1), Err(ValueError("a")), Ok(2)]
        >>> values, errors = partition_results(results)
        >>> values
        [1, 2]
        >>> len(errors)
        1
    """
    values = []
    errors = []
    for result in results:
        match result:
            case Ok(value):
                values.append(value)
            case Err(error):
                errors.append(error)
    return values, errors


__all__ = ["Ok", "Err", "Result", "partition_results"]
