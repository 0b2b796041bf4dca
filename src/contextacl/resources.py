"""Identifiers for actors and targets.

Actors and targets are both plain identifier strings (conventionally UUIDs).
Two sentinels exist and must never be assigned to a real entity:

- ``NULL_ID`` marks a generic rule, one that applies to any target.
- ``NO_RESOURCE`` (the empty string) is the effective target handed to a
  bypass hook by a generic ``allows_action`` check.
"""

from __future__ import annotations

from typing import Optional, Union
from uuid import UUID

from .exceptions import InvalidIdentifierError

NULL_ID = "00000000-0000-0000-0000-000000000000"
NO_RESOURCE = ""

Identifier = str
IdentifierLike = Union[str, UUID]


def to_identifier(value: IdentifierLike) -> Identifier:
    """Normalise a str or UUID into its identifier string."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"Identifier must be str or UUID, got {type(value).__name__}")


def require_identifier(value: IdentifierLike, role: str = "actor") -> Identifier:
    """Normalise an identifier and reject the empty string and NULL_ID.

    Used on every write path; ``role`` only shapes the error message.
    """
    ident = to_identifier(value)
    if not ident:
        raise InvalidIdentifierError(f"Empty {role} identifier", role=role)
    if ident == NULL_ID:
        raise InvalidIdentifierError(f"The null identifier cannot be used as {role}", role=role)
    return ident


def rule_target(target: Optional[IdentifierLike]) -> Identifier:
    """Map an optional target to the stored target column value.

    ``None`` means a generic rule and is stored as NULL_ID.
    """
    if target is None:
        return NULL_ID
    ident = to_identifier(target)
    if ident == NULL_ID:
        return NULL_ID
    return require_identifier(ident, role="target")


def is_generic(target: Optional[IdentifierLike]) -> bool:
    """True when a target names no specific object."""
    if target is None:
        return True
    ident = to_identifier(target)
    return ident in (NO_RESOURCE, NULL_ID)


__all__ = [
    "NULL_ID",
    "NO_RESOURCE",
    "Identifier",
    "IdentifierLike",
    "is_generic",
    "require_identifier",
    "rule_target",
    "to_identifier",
]
