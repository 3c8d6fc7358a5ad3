"""Logging config for the tracker webhook service

## Setup

Logging is configured the first time this module is imported. It uses structlog for structured logging. Logs are
pretty-printed in the local env (TRACKER_ENVIRONMENT='local') and are JSON-formatted everywhere else.

```
from src.utils.logging import get_logger

logger = get_logger(__name__)
logger.info("Commit recorded", sha="abc123", branch="main")
```

## Log context

Context bound with `add_log_context()` or `LogContext` is merged into every log line emitted in the current async
context. The webhook handler binds the delivery id, event type and repository once per request:

```
with LogContext(delivery_id="72d3162e", repository="octo/widgets"):
    logger.info("Processing push")  # includes delivery_id and repository
```

Library code that uses `logging.getLogger()` is routed through the same formatter, so uvicorn and asyncpg logs share
the format and the context.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
import structlog.contextvars

from src.utils.config import get_tracker_environment
from src.utils.newrelic_logging import newrelic_error_processor

# LOG_RENDERER values that override the environment-based choice (value: use console renderer)
_RENDERER_OVERRIDES = {"console": True, "json": False}

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


def _is_local_environment() -> bool:
    return get_tracker_environment() == "local"


def _get_log_level() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def _get_log_renderer() -> structlog.types.Processor:
    """Pretty console output locally, JSON lines (what New Relic ingests) elsewhere.

    Set LOG_RENDERER to 'console' or 'json' to force one or the other.
    """
    override = os.getenv("LOG_RENDERER", "").lower()
    use_console = _RENDERER_OVERRIDES.get(override, _is_local_environment())

    if not use_console:
        return structlog.processors.JSONRenderer()

    return structlog.dev.ConsoleRenderer(
        colors=True,
        force_colors=False,
        pad_event=0,
        sort_keys=True,
        repr_native_str=False,
        event_key="message",
        exception_formatter=structlog.dev.plain_traceback,
    )


def _shared_processors() -> list[structlog.types.Processor]:
    """Processors applied to structlog and stdlib records alike, before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        # New Relic log forwarding reads the 'message' key
        structlog.processors.EventRenamer("message"),
        newrelic_error_processor,
    ]


def build_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter for stdlib handlers; also referenced by the uvicorn dictConfig."""
    return structlog.stdlib.ProcessorFormatter(
        processor=_get_log_renderer(),
        foreign_pre_chain=_shared_processors(),
    )


def configure_logging() -> None:
    """Route structlog through the stdlib root logger and install a single stream handler."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter())

    level = _get_log_level()
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # uvicorn pins its own loggers to INFO
    if level < logging.INFO:
        for name in _UVICORN_LOGGERS:
            logging.getLogger(name).setLevel(level)


configure_logging()


def add_log_context(**kwargs: Any) -> None:
    """Bind values to every log line emitted in the current async context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def remove_log_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


# Binds for the duration of a with-block and restores the previous values on exit
LogContext = structlog.contextvars.bound_contextvars


def get_logger(name: str, **kwargs: Any) -> structlog.BoundLogger:
    """Get a structlog logger named `name`, with `kwargs` bound to every line it emits."""
    return structlog.get_logger(name, **kwargs)


def get_uvicorn_log_config() -> dict[str, Any]:
    """dictConfig for uvicorn so server and access logs share the app's format and context."""
    level = logging.getLevelName(_get_log_level())
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"structlog": {"()": build_formatter}},
        "handlers": {
            "stream": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: {"handlers": ["stream"], "level": level, "propagate": False}
            for name in _UVICORN_LOGGERS
        },
    }
