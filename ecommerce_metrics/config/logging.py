"""
Logging Configuration for the E-Commerce Metrics Service

One structlog pipeline for our own loggers and for records coming from
uvicorn, aiokafka and SQLAlchemy. Every line carries the service name and
environment; request and stream handlers add their own context on top
(request id from the middleware, partition/offset from the ingestor).

Safe to call more than once: the app factory, the scripts and the tests all
configure logging, and only the handler installed here is replaced.
"""

import logging
import sys
from typing import Dict, List, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter
from structlog.types import EventDict, Processor, WrappedLogger

from ecommerce_metrics.config.settings import Settings, get_settings

# set on the handler we own so a reconfigure leaves foreign handlers alone
_HANDLER_MARK = "_ecommerce_metrics_handler"

# library loggers that are noisy at INFO; never more verbose than this
_LIBRARY_FLOORS: Dict[str, int] = {
    "aiokafka": logging.WARNING,  # rebalance and fetcher chatter
    "uvicorn.access": logging.WARNING,  # RequestLoggingMiddleware logs each request
    "sqlalchemy.engine": logging.WARNING,
}


def service_context(settings: Settings) -> Processor:
    """Processor stamping service name and environment on every event."""

    def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("environment", settings.app_env)
        return event_dict

    return add_service_context


def build_processors(settings: Settings) -> List[Processor]:
    """Processors shared by structlog loggers and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        service_context(settings),
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def _install_handler(handler: logging.Handler, level: int) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        if getattr(existing, _HANDLER_MARK, False):
            root_logger.removeHandler(existing)
    setattr(handler, _HANDLER_MARK, True)
    root_logger.addHandler(handler)

    # uvicorn installs its own handlers; route its records through ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def _apply_library_levels(level: int, settings: Settings) -> None:
    for name, floor in _LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(level, floor))
    if settings.database.echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def configure_logging(log_level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for the service.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        settings: Settings to read level, format and service identity from
    """
    settings = settings or get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    processors = build_processors(settings)
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ProcessorFormatter(
            processor=_renderer(settings.monitoring.log_format),
            foreign_pre_chain=processors,
        )
    )
    _install_handler(handler, numeric_level)
    _apply_library_levels(numeric_level, settings)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
    )
