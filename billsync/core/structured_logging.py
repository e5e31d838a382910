"""
Structured logging for billsync.

Every record, whether it comes from ``structlog.get_logger()`` or a plain
``logging.getLogger(__name__)``, is rendered as one JSON line carrying the
service name, version and whichever correlation IDs are live in the current
context: ``request_id``/``correlation_id`` inside an HTTP request,
``poll_cycle_id`` inside a Stripe event poll cycle.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
import time
from contextvars import ContextVar
from typing import Optional

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
poll_cycle_id_var: ContextVar[str | None] = ContextVar("poll_cycle_id", default=None)

_CONTEXT_FIELDS = (
    ("request_id", request_id_var),
    ("correlation_id", correlation_id_var),
    ("poll_cycle_id", poll_cycle_id_var),
)

APP_VERSION = "0.3.0"
SERVICE_NAME = "billsync"

# The Stripe SDK logs every request at INFO; keep its chatter out of the poll logs
NOISY_LOGGERS = ("stripe", "urllib3", "httpx", "httpcore", "asyncio", "alembic.runtime.migration")

_started_at = time.monotonic()


def get_uptime_s() -> float:
    return time.monotonic() - _started_at


def _inject_context(logger_name: str, method_name: str, event_dict: dict) -> dict:
    """Structlog processor: stamp service identity and live correlation IDs."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = APP_VERSION
    for key, var in _CONTEXT_FIELDS:
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def _normalize_level(logger_name: str, method_name: str, event_dict: dict) -> dict:
    level = event_dict.get("level")
    if level:
        event_dict["level"] = level.lower()
    return event_dict


def _pre_chain() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        _normalize_level,
        structlog.stdlib.add_logger_name,
        _inject_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _json_formatter(pre_chain: list) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def _rotating_file_handler(
    log_dir: str, log_file: str, max_bytes: int, backup_count: int
) -> Optional[logging.Handler]:
    try:
        os.makedirs(log_dir, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        sys.stderr.write(f"billsync: file logging disabled ({exc}); logging to stderr only\n")
        return None


def setup_logging(
    log_dir: str = "logs",
    log_file: str = "billsync.jsonl",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    log_level: int | str = logging.INFO,
) -> None:
    """Route structlog and stdlib logging through one JSON formatter.

    Safe to call more than once (the API process and the one-shot sync
    script both call it); each call replaces the root handlers.
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = _json_formatter(pre_chain)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_handler = _rotating_file_handler(log_dir, log_file, max_bytes, backup_count)
    if file_handler is not None:
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(log_level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
