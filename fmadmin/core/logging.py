"""
Structured logging for fmadmin.

Log events are key-value pairs rendered with rich for interactive use or as
JSON lines otherwise. The correlation id and the profile being worked on
live in context variables, so they follow every task spawned by a session
(background writes, the change feed) without being passed around.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

_correlation_id: ContextVar[Optional[str]] = ContextVar("fmadmin_correlation_id", default=None)

# Chatty per-request loggers of the HTTP stack
_NOISY_LOGGERS = ("httpx", "httpcore")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set (or generate) the correlation id for the current context."""
    value = correlation_id or uuid.uuid4().hex[:8]
    _correlation_id.set(value)
    return value


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def add_correlation_id(logger, method_name, event_dict):
    """structlog processor adding the correlation id, if one is set."""
    correlation_id = _correlation_id.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


@contextmanager
def bind_profile(entity_id: str, profile_type: str) -> Iterator[None]:
    """Tag every log event emitted inside the block with the profile."""
    with structlog.contextvars.bound_contextvars(
        profile_id=entity_id, profile_type=str(profile_type)
    ):
        yield


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        debug: Log at DEBUG instead of INFO, including HTTP request logs
        rich_output: Rich console rendering on stderr instead of JSON lines
    """
    level = logging.DEBUG if debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.set_exc_info,
    ]

    if rich_output:
        console = Console(stderr=True)
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=console.is_terminal, exception_formatter=structlog.dev.rich_traceback
            )
        )
        handler: logging.Handler = RichHandler(console=console, show_path=False)
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
        handler = logging.StreamHandler(sys.stderr)

    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
