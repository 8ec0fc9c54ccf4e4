"""
Logging Configuration for the Sales Data Warehouse pipeline

structlog events (stage_started, stage_completed, stage_failed, ...) and
plain stdlib records from libraries end up on one handler with the same
rendering, so a run produces a single stream of JSON lines or console text.
"""

import logging
import sys
from typing import List, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import ProcessorFormatter, add_log_level
from structlog.types import Processor

from salesdwh.config.settings import Settings, get_settings


def _pre_chain() -> List[Processor]:
    """Processors shared by structlog events and foreign stdlib records"""
    return [
        # run_id and other bound context
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(
    log_level: Optional[str] = None,
    settings: Optional[Settings] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog through the root logger with one pipeline handler.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        settings: Settings to read defaults from (cached settings when omitted)
        stream: Where to write, stdout when omitted
    """
    settings = settings or get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    pre_chain = _pre_chain()
    structlog.configure(
        processors=pre_chain + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ProcessorFormatter(
            processors=[
                ProcessorFormatter.remove_processors_meta,
                _renderer(settings.monitoring.log_format),
            ],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    # SQL statements only when echo is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
        environment=settings.app_env,
    )
