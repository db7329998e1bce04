import logging
import sys
from typing import Any

import structlog

from src.constants.env import JSON_LOGS, LOG_LEVEL


def setup_logging(json_logs: bool = JSON_LOGS, log_level: str = LOG_LEVEL) -> None:
    """
    Configure structlog and route stdlib logging through the same processors.

    Safe to call more than once; the last call wins for level and renderer.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level.upper())

    # uvicorn access logs are replaced by the http logging middleware
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger(name)


def log_error(
    log: structlog.stdlib.BoundLogger,
    message: str,
    error: BaseException,
    **context: Any,
) -> None:
    """Log an exception with its type and message as structured fields."""
    log.error(
        message,
        error_message=str(error),
        error_type=type(error).__name__,
        exc_info=error,
        **context,
    )


logger = get_logger("docflow")
