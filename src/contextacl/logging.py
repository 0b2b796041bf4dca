"""Logging utilities for contextacl.

This module provides:
- Logging configuration from AclConfig
- Safe, bounded previews of logged values
- Structured (JSON or plain) formatting with evaluation context
- A logger adapter that stamps actor/action/target onto records
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from uuid import UUID

from .config import AclConfig, LogLevel

# Record attributes that carry evaluation context.
CONTEXT_FIELDS = ("actor_id", "action", "target_id")

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "message", "pathname", "process", "processName", "relativeCreated",
        "thread", "threadName", "exc_info", "exc_text", "stack_info",
        "taskName",
    }
)


def safe_preview(value: Any, limit: int = 240) -> str:
    """Render a value as a single bounded line for logging.

    Args:
        value: The value to preview (any type)
        limit: Maximum length of the preview (default: 240)

    Returns:
        A whitespace-normalised, truncated string
    """
    if value is None:
        return ""

    if isinstance(value, str):
        s = value
    elif isinstance(value, UUID):
        s = str(value)
    elif isinstance(value, (dict, list, tuple)):
        try:
            s = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            s = str(value)
    else:
        s = str(value)

    s = " ".join(s.split())

    if len(s) > limit:
        return s[: limit - 1] + "…"

    return s


class AclFormatter(logging.Formatter):
    """Formatter emitting JSON (default) or plain text with evaluation context.

    Context fields (actor_id, action, target_id) are lifted out of the record
    when present; any other ``extra`` values are appended as safe previews.
    """

    def __init__(self, json_format: bool = True, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {}
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                context[key] = safe_preview(value)
        log_data.update(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key in CONTEXT_FIELDS or key.startswith("_"):
                continue
            log_data[key] = safe_preview(value)

        if self.json_format:
            return json.dumps(log_data, default=str, ensure_ascii=False)

        parts = [
            f"[{log_data['timestamp']}]",
            log_data["level"],
            log_data["logger"],
        ]
        parts.extend(f"{k}={v}" for k, v in context.items())
        parts.append(f": {log_data['message']}")
        line = " ".join(parts)
        if "exception" in log_data:
            line = f"{line}\n{log_data['exception']}"
        return line


class AclLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds actor_id/action/target_id to every record.

    Per-call keyword arguments override the adapter's defaults:

        logger = get_acl_logger(__name__, actor_id=user_id)
        logger.debug("Decision reached", action="edit", target_id=doc_id)
    """

    def __init__(
        self,
        logger: logging.Logger,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        target_id: Optional[str] = None,
    ):
        super().__init__(logger, {})
        self.actor_id = actor_id
        self.action = action
        self.target_id = target_id

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        for key in CONTEXT_FIELDS:
            value = kwargs.pop(key, getattr(self, key))
            if value is not None:
                extra[key] = value
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    config: Optional[AclConfig] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure the root logger for an application embedding contextacl.

    Args:
        config: AclConfig instance (if None, loads from environment)
        json_format: Force JSON on/off (default: config.log_json)
    """
    if config is None:
        from .config import load_acl_config_from_env

        config = load_acl_config_from_env()

    level_map = {
        LogLevel.DEBUG: logging.DEBUG,
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
        LogLevel.CRITICAL: logging.CRITICAL,
    }
    log_level = level_map.get(LogLevel(config.log_level), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    use_json = config.log_json if json_format is None else json_format
    console_handler.setFormatter(AclFormatter(json_format=use_json))
    root_logger.addHandler(console_handler)


def get_acl_logger(
    name: str,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    target_id: Optional[str] = None,
) -> AclLoggerAdapter:
    """Get a logger adapter carrying evaluation context.

    Args:
        name: Logger name (typically __name__)
        actor_id: Default actor identifier for every record
        action: Default action name for every record
        target_id: Default target identifier for every record

    Returns:
        AclLoggerAdapter instance
    """
    return AclLoggerAdapter(logging.getLogger(name), actor_id=actor_id, action=action, target_id=target_id)


__all__ = [
    "AclFormatter",
    "AclLoggerAdapter",
    "get_acl_logger",
    "safe_preview",
    "setup_logging",
]
