"""Logging configuration for the Commitstream API.

Bridges structlog into the standard logging module so that application logs
and library logs (uvicorn, GitPython) share one formatter.
"""

import logging

import structlog
from structlog.stdlib import ProcessorFormatter
from structlog.typing import Processor

_PRE_CHAIN: tuple[Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
)


def configure_logging(level: str | int = "INFO", json_output: bool = False) -> None:
    """Configure structlog and the root logger.

    Args:
        level: Minimum level, as a name (``"DEBUG"``) or a logging constant.
        json_output: Render JSON lines instead of human-readable console output.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    structlog.configure(
        processors=[*_PRE_CHAIN, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    handler = logging.StreamHandler()
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=_PRE_CHAIN))

    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.captureWarnings(True)
