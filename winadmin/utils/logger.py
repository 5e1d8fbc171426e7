"""Structured logging for winadmin using structlog."""

import logging
import os

import structlog
from structlog.types import FilteringBoundLogger


def _env_level(default: int = logging.INFO) -> int:
    name = os.getenv("LOG_LEVEL", "").upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


# Configure structlog based on environment
def configure_structlog():
    """Configure structlog with pretty or JSON output based on LOG_FORMAT env.

    Stdlib logging is routed through structlog so asyncio and other library
    records share the same renderer and level control.
    """
    log_format = os.getenv("LOG_FORMAT", "pretty").lower()
    log_colors_env = os.getenv("LOG_COLORS", "true").lower()
    log_colors = log_colors_env in ("true", "1", "yes", "on")

    # Choose renderer for final output
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_colors)

    # Root logger + handler with ProcessorFormatter; stderr keeps stdout free for results
    logging.root.handlers = []
    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(_env_level())

    # Capture warnings to logging
    logging.captureWarnings(True)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    # structlog pipeline; wrap_for_formatter hands off to ProcessorFormatter above
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog on module import
configure_structlog()


def operation_log(
    logger: FilteringBoundLogger,
    operation: str,
    params: dict,
    **kwargs,
):
    """Log an operation call with secret-looking parameters redacted."""
    safe = {
        k: ("***" if "password" in k.lower() else v) for k, v in params.items()
    }
    logger.info("Operation call", operation=operation, params=safe, **kwargs)


def output_log(
    logger: FilteringBoundLogger, event: str, content: str | None = None, **kwargs
):
    """Log a chunk of external tool output, truncated."""
    logger.debug(
        event,
        content=content[:300] if content else None,
        **kwargs,
    )


# Create loggers directly with structlog
def get_logger(name: str, level: int | None = None) -> FilteringBoundLogger:
    """Get a configured structlog logger."""
    stdlib_logger = logging.getLogger(name)
    stdlib_logger.setLevel(level if level is not None else _env_level())
    return structlog.get_logger(name)


# Global logger instances
exec_logger = get_logger("winadmin.exec")
ops_logger = get_logger("winadmin.ops")
fallback_logger = get_logger("winadmin.fallback")
