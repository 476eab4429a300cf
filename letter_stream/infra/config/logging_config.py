"""
Structured logging for the generation engine.

Every module logs through ``get_logger(<area>)`` with dotted event names
(``session.start``, ``stream.complete``). Correlation fields such as
``target_id`` and ``session_id`` are bound per asyncio task with
``bind_context`` and merged into every event that task logs.
"""

import logging
from typing import Any, List

import structlog

# Chatty per-request loggers of the HTTP stack
_QUIET_LOGGERS = ("httpx", "httpcore")


def _renderer(log_format: str) -> Any:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer(sort_keys=True)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Level name such as "INFO" or "DEBUG"
        log_format: "json" for one object per line, "console" for humans
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format="%(message)s")
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        _renderer(log_format.lower()),
    ]
    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    """Bind correlation fields for the current task; None values are skipped."""
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in fields.items() if value is not None}
    )
