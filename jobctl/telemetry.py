import logging
import sys
from typing import Any, Dict, Mapping, Optional

import structlog

from .config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structured logging with structlog."""
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    # JSON for production, pretty printing for development
    if settings.debug:
        renderers = [structlog.dev.ConsoleRenderer()]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    # Rendered events are handed to stdlib logging, which owns the stream.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class ErrorSink:
    """Receives exceptions worth paging on, tagged for grouping."""

    def capture(
        self,
        exc: BaseException,
        tags: Mapping[str, str],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class LogErrorSink(ErrorSink):
    """Default sink: writes the captured exception to the structured log."""

    def __init__(self, name: str = "jobctl.errors"):
        self._log = get_logger(name)

    def capture(self, exc, tags, extra=None):
        fields: Dict[str, Any] = dict(tags)
        if extra:
            fields["extra"] = dict(extra)
        self._log.error("captured_exception", error=str(exc), error_type=type(exc).__name__, **fields)
