"""
Structured logging configuration using structlog.

Development gets coloured console output, every other environment gets JSON.
stdlib loggers (uvicorn, firebase_admin, ...) are routed through the same
processors so their lines carry the bound request_id too.

In any module::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("like_recorded", actor_id=actor_id, target_id=target_id)
"""

import logging
import sys

import structlog


def configure_logging(environment: str = "development", level: str = "INFO") -> None:
    """Configure structlog with a stdlib bridge. Safe to call more than once."""
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if environment == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if environment != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
