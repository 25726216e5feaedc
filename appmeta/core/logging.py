"""
Structured logging configuration for appmeta.

Library modules only call get_logger(); the CLI calls setup_logging(). Every
event emitted while an archive is being extracted carries the archive name and
platform through archive_context(), so decoder messages deep in the AXML or
plist code can be traced back to the package they came from.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import Config

# Integer event fields rendered as 0xPPTTEEEE resource ids
RESOURCE_ID_FIELDS = frozenset({"resource_id", "target_id"})

# Third-party loggers that trace every chunk they read at DEBUG
CHATTY_LOGGERS = ("PIL",)


def format_resource_ids(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Render integer resource id fields in hex, the way aapt prints them."""
    for key in RESOURCE_ID_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, int) and not isinstance(value, bool):
            event_dict[key] = f"0x{value:08x}"
    return event_dict


def setup_logging(config: Config | None = None) -> None:
    """Configure structured logging for the application.

    Safe to call more than once; each call replaces the previous setup.

    Args:
        config: Optional configuration. If None, uses INFO level.
    """
    log_level = config.log_level if config else "INFO"
    level = getattr(logging, log_level, logging.INFO)

    # Stdlib records come from Pillow; appmeta itself logs through structlog
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=log_level == "DEBUG",
    )
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler], force=True)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        format_resource_ids,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if sys.stderr.isatty():
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured bound logger
    """
    return structlog.get_logger(name)


@contextmanager
def archive_context(archive: str, platform: str) -> Iterator[None]:
    """Bind the archive being extracted to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(archive=archive, platform=platform):
        yield
