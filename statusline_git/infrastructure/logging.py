import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from statusline_git.core.config import Settings, settings as default_settings
from statusline_git.infrastructure.logging_processors import (
    add_service_context,
    format_exception_info,
    sanitize_sensitive_data,
    set_log_severity,
)


def setup_logging(settings: Optional[Settings] = None, level: Optional[str] = None) -> None:
    settings = settings or default_settings
    log_level = level or settings.log_level
    timestamper = structlog.processors.TimeStamper(fmt="iso")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        set_log_severity,
        format_exception_info,
        timestamper,
        # Sanitize sensitive data (should be last before rendering)
        sanitize_sensitive_data,
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout belongs to the status line itself
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)

