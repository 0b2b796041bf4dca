"""Rule and inheritance-edge storage.

Provides:
- ``RuleStore`` / ``InheritanceGraph``: abstract storage contracts.
- ``SqlRuleStore`` / ``SqlInheritanceGraph``: SQLAlchemy Core backend.
- ``RedisRuleStore`` / ``RedisInheritanceGraph``: Redis backend.
"""

from .base import InheritanceGraph, PermissionRule, RuleStore
from .redis_backend import RedisInheritanceGraph, RedisRuleStore
from .sql_backend import SqlInheritanceGraph, SqlRuleStore

__all__ = [
    "InheritanceGraph",
    "PermissionRule",
    "RedisInheritanceGraph",
    "RedisRuleStore",
    "RuleStore",
    "SqlInheritanceGraph",
    "SqlRuleStore",
]
