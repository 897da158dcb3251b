"""
Structured logging for the breakout scanner.

``setup_logging()`` is called once when the data service starts.  It routes
both ``structlog`` loggers and stdlib ``logging`` (uvicorn, httpx, slowapi,
the analysis modules) through one ``ProcessorFormatter`` so every line has
the same shape, with ``service`` bound on every event.

A scan fans out into hundreds of upstream requests.  ``scan_context()``
binds a short ``scan_id`` and the endpoint name for the duration of one
scan; the fetcher's request tasks copy the context when they are created,
so their warnings carry the same id::

    from src.breakout_lib.core.logging_config import get_logger, scan_context

    logger = get_logger("scan")

    with scan_context("fetch-gate-data", symbols=120):
        logger.info("breakout_scan_complete", detected=["BTC_USDT"])
    # => 2026-10-19T14:23:01Z [info] breakout_scan_complete  detected=['BTC_USDT']
    #    endpoint=fetch-gate-data scan_id=3f9c0a1b2d4e service=data-service symbols=120

``LOG_FORMAT=json`` switches to JSON lines for a log collector; the default
is the coloured console renderer.  ``LOG_LEVEL`` sets the root level.
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

# Held at WARNING
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

_SCAN_ID_LENGTH = 12


def _build_renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        pad_event_to=30,
    )


def setup_logging(
    *,
    service: str = "breakout-scanner",
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure ``structlog`` and stdlib ``logging`` for the process.

    Parameters
    ----------
    service:
        Bound to every event (``"data-service"`` for the HTTP front).
    level:
        Root level; defaults to ``LOG_LEVEL`` then ``"INFO"``.
    log_format:
        ``"console"`` or ``"json"``; defaults to ``LOG_FORMAT`` then
        ``"console"``.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.getenv("LOG_FORMAT", "console")).lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _build_renderer(log_format),
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)


def new_scan_id() -> str:
    return uuid.uuid4().hex[:_SCAN_ID_LENGTH]


@contextmanager
def scan_context(endpoint: str, **extra: Any) -> Iterator[str]:
    """Bind ``scan_id``, ``endpoint`` and *extra* to every event in the block.

    Yields the scan id.  Bindings are removed on exit, the ``service``
    binding from ``setup_logging`` is left alone.
    """
    scan_id = new_scan_id()
    with structlog.contextvars.bound_contextvars(
        scan_id=scan_id, endpoint=endpoint, **extra
    ):
        yield scan_id


def get_logger(
    name: str | None = None, **initial_binds: Any
) -> structlog.stdlib.BoundLogger:
    """Return a structured logger, optionally bound with extra context.

    >>> logger = get_logger("gate_loader", phase="stats")
    >>> logger.info("stats_phase_complete", requested=120, passed=97)
    """
    log = structlog.get_logger(name)
    if initial_binds:
        log = log.bind(**initial_binds)
    return log
