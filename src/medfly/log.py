"""structlog configuration.

Console rendering for development, JSON lines for deployments::

    configure_logging(LogConfig.from_env())
    log = get_logger(__name__)
    log.warning("fetch_failed", collection="notes", error=str(exc))
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum

import structlog


class LogFormat(str, Enum):
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LogConfig:
    level: str = "INFO"
    format: LogFormat = LogFormat.CONSOLE

    @classmethod
    def from_env(cls) -> "LogConfig":
        level = os.getenv("MEDFLY_LOG_LEVEL", "INFO").upper()
        fmt = os.getenv("MEDFLY_LOG_FORMAT", "console").lower()
        return cls(level=level, format=LogFormat.JSON if fmt == "json" else LogFormat.CONSOLE)


def configure_logging(config: LogConfig | None = None) -> None:
    """Route structlog and the stdlib root logger through one renderer."""
    config = config or LogConfig.from_env()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if config.format == LogFormat.JSON
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *shared_processors,
                    structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(config.level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
