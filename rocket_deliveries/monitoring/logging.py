"""
Structured logging configuration.

structlog events are handed to the standard library as a message plus
``extra`` fields, so application events and third-party loggers (uvicorn,
SQLAlchemy, stripe) come out of the same JSON formatter, one object per line.
Request id, method, path and the signed-in pilot are merged from contextvars.
"""
import logging
import sys

import structlog
from pythonjsonlogger.json import JsonFormatter

from rocket_deliveries.config import get_settings


def setup_logging() -> None:
    """
    Configure structlog and the root logger.

    Each line carries ``timestamp``, ``level``, ``logger``, ``event``,
    the application name/environment and any bound context.
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = JsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger", "message": "event"},
        static_fields={"app_name": settings.app_name, "app_env": settings.app_env},
        timestamp=True,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level))

    # SQL echo is controlled by DATABASE_ECHO, not the log level
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
    )
