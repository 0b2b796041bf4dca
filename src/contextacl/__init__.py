from .config import AclConfig, LogLevel, StorageBackend, load_acl_config_from_env
from .engine import AccessControl, BypassHook, Decision
from .exceptions import (
    AclError,
    ConfigurationError,
    CycleError,
    DatabaseConnectionError,
    InvalidIdentifierError,
    StorageError,
)
from .factory import create_access_control
from .logging import (
    AclFormatter,
    AclLoggerAdapter,
    get_acl_logger,
    safe_preview,
    setup_logging,
)
from .resources import NO_RESOURCE, NULL_ID
from .schema import ensure_redis_schema, ensure_sql_schema
from .store import (
    InheritanceGraph,
    PermissionRule,
    RedisInheritanceGraph,
    RedisRuleStore,
    RuleStore,
    SqlInheritanceGraph,
    SqlRuleStore,
)

__all__ = [
    'AccessControl',
    'BypassHook',
    'Decision',
    'create_access_control',
    'AclConfig',
    'LogLevel',
    'StorageBackend',
    'load_acl_config_from_env',
    'AclError',
    'ConfigurationError',
    'CycleError',
    'DatabaseConnectionError',
    'InvalidIdentifierError',
    'StorageError',
    'NULL_ID',
    'NO_RESOURCE',
    'InheritanceGraph',
    'PermissionRule',
    'RuleStore',
    'SqlRuleStore',
    'SqlInheritanceGraph',
    'RedisRuleStore',
    'RedisInheritanceGraph',
    'ensure_sql_schema',
    'ensure_redis_schema',
    'safe_preview',
    'AclFormatter',
    'AclLoggerAdapter',
    'setup_logging',
    'get_acl_logger',
]
