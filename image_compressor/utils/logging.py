import logging
import sys
from typing import Any, Dict, Optional

import structlog

SENSITIVE_KEYS = ("secret", "api_key", "authorization", "password", "token")

REDACTED = "***REDACTED***"


def filter_sensitive_data(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask API keys and auth material in log entries."""

    def _recursive_filter(obj: Any, depth: int = 0) -> Any:
        if depth > 10:
            return "***DEPTH_LIMIT***"

        if isinstance(obj, dict):
            filtered = {}
            for key, value in obj.items():
                key_lower = str(key).lower()
                if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
                    filtered[key] = REDACTED
                else:
                    filtered[key] = _recursive_filter(value, depth + 1)
            return filtered
        elif isinstance(obj, (list, tuple)):
            return [_recursive_filter(item, depth + 1) for item in obj]
        return obj

    return _recursive_filter(event_dict)


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure structured logging for the SDK.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Use JSON format for logs
        log_file: Optional file to append logs to, in addition to stderr
    """
    level = getattr(logging, log_level.upper())

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        filter_sensitive_data,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=level,
        force=True,
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


class LoggingContext:
    """Context manager for binding context (e.g. a task id) to logs."""

    def __init__(self, **kwargs) -> None:
        self.context = kwargs
        self._tokens = None

    def __enter__(self) -> "LoggingContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
