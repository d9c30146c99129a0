"""
structlog configuration for the web process.

Call configure_logging() once from the application factory. Modules then
obtain a logger with get_logger(__name__) and log event names with context:

    log = get_logger(__name__)
    log.info("payment_verified", payment_id=payment.id, residence_id=residence.id)
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Any

import structlog
from flask import Flask, g, request


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def register_request_logging(app: Flask) -> None:
    """Log one line per request with method, path, status and duration."""
    log = get_logger("syndic.request")

    @app.before_request
    def _start_timer() -> None:
        g.request_started_at = time.monotonic()

    @app.after_request
    def _log_request(response):
        started = getattr(g, "request_started_at", None)
        elapsed_ms = round((time.monotonic() - started) * 1000, 2) if started else None
        log.info(
            "request_completed",
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=elapsed_ms,
        )
        return response

    @app.teardown_request
    def _log_failure(exc: BaseException | None) -> None:
        if exc is not None:
            log.error("request_failed", method=request.method, path=request.path, error=str(exc))
