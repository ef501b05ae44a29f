"""structlog setup for the CLI. Log lines go to stderr, stdout carries command output."""

from __future__ import annotations

import logging
import os
import sys

import structlog
from structlog.types import Processor

_HANDLER_NAME = "modforest"
_QUIET_LOGGERS = ("watchdog", "asyncio")


def _pre_chain(json_output: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if json_output:
        chain += [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.dict_tracebacks,
        ]
    return chain


def setup_logging(level: str | None = None) -> None:
    """Route structlog and stdlib records through one stderr handler.

    *level* wins over ``MODFOREST_LOG_LEVEL`` (default INFO); the CLI passes
    DEBUG for ``-v``. ``MODFOREST_LOG_FORMAT=json`` switches from the console
    renderer to one JSON object per line.
    """
    log_level = (level or os.environ.get("MODFOREST_LOG_LEVEL", "INFO")).upper()
    json_output = os.environ.get("MODFOREST_LOG_FORMAT", "console").lower() == "json"

    pre_chain = _pre_chain(json_output)
    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    for old in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(log_level)

    logging.getLogger("modforest").setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
