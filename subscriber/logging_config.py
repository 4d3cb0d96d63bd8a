import logging
import sys

import structlog
from structlog.types import Processor

from subscriber.config import settings


# uvicorn runs with log_config=None, so its loggers have no handlers of their
# own; they are reset here and propagate into the structlog formatter on root.
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.asgi")

QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _renderer(is_development: bool) -> Processor:
    if is_development:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """
    Configure structlog for the subscriber module.
    - JSON output in production, console output in development
    - uvicorn's server logs share the same handler and format
    - Safe to call more than once
    """
    level = settings.log_level.upper()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings.app_env == "development"),
        ],
        foreign_pre_chain=shared_processors,
    ))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in UVICORN_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
        server_logger.setLevel(level)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance with the given name.
    All logs will include service="subscriber" by default.

    Usage:
        logger = get_logger(__name__)
        logger.info("topic.retrieved", topic="sampleTopic1")
    """
    return structlog.get_logger(name, service="subscriber")
