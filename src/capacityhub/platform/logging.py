"""
CapacityHub Structured Logging

Configures structlog and routes the engine's standard library loggers
through the same renderer: JSON in production, console elsewhere. Every
record carries the application name, version and environment.
"""

import logging
import sys

import structlog

from capacityhub.platform.config import settings

_configured = False


class _StdoutHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stdout`` is when a record is emitted."""

    @property
    def stream(self):
        return sys.stdout

    @stream.setter
    def stream(self, value):
        pass


def _add_app_context(logger, method_name, event_dict):
    event_dict.setdefault("app", settings.APP_NAME)
    event_dict.setdefault("version", settings.VERSION)
    event_dict.setdefault("env", settings.APP_ENV)
    return event_dict


def configure_logging(force: bool = False) -> None:
    """
    Configure structured logging for the application.

    Only the first call applies unless ``force`` is set, so every entry
    point may call it.
    """
    global _configured
    if _configured and not force:
        return

    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    json_output = settings.APP_ENV == "production"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    final_processors = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_output:
        final_processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        final_processors.append(structlog.dev.ConsoleRenderer(colors=True))

    handler = _StdoutHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=final_processors,
        )
    )

    app_logger = logging.getLogger("capacityhub")
    app_logger.handlers = [handler]
    app_logger.setLevel(log_level)
    app_logger.propagate = False

    _configured = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
