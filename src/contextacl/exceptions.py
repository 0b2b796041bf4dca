"""Exception hierarchy for contextacl.

All errors raised by the library inherit from AclError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for mapping codes back to exception classes

Usage:
    from contextacl.exceptions import (
        AclError,
        CycleError,
        StorageError,
    )

"No decision" is never an exception: rule lookups return ``None`` and the
evaluation engine turns that into a deny.
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "AclError",
    "ConfigurationError",
    "InvalidIdentifierError",
    "StorageError",
    "DatabaseConnectionError",
    "CycleError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
]


# ---- Exception Hierarchy ----------------------------------------------------


class AclError(Exception):
    """Base exception for contextacl.

    Attributes:
        code: Stable error code string (e.g. "CYCLE_ERROR").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "ACL_ERROR"
    message: str = "An access control error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(AclError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidIdentifierError(AclError, ValueError):
    """Identifier is empty or is the reserved null identifier."""

    code: str = "INVALID_IDENTIFIER"
    message: str = "Invalid actor or target identifier"


class StorageError(AclError):
    """The backing store could not be reached or queried.

    Covers missing tables, an unprovisioned keyspace, and malformed rows.
    Never used to signal that no rule exists.
    """

    code: str = "STORAGE_ERROR"
    message: str = "Permission storage is unavailable"


class DatabaseConnectionError(StorageError):
    """Failed to connect to the backing store."""

    code: str = "DB_CONNECTION_ERROR"


class CycleError(AclError):
    """Adding an inheritance edge would create a cycle.

    ``details`` holds the rejected ``child`` and ``parent`` identifiers.
    """

    code: str = "CYCLE_ERROR"
    message: str = "Cycles are not allowed in the inheritance graph"


# ---- Error Registry ---------------------------------------------------------

_E = TypeVar("_E", bound=type[AclError])


class ErrorRegistry:
    """Registry mapping stable error codes to exception classes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[AclError]] = {}

    def register(self, code: str, error_cls: type[AclError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[AclError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[AclError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("TENANT_MISMATCH")
        class TenantMismatchError(AclError):
            code = "TENANT_MISMATCH"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


for _cls in (
    AclError,
    ConfigurationError,
    InvalidIdentifierError,
    StorageError,
    DatabaseConnectionError,
    CycleError,
):
    error_registry.register(_cls.code, _cls)
del _cls
