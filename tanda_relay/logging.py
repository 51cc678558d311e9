"""
Structured logging setup for tanda-relay.

Configures **structlog** on top of the stdlib ``logging`` package:
- events are rendered as JSON by default, or with the console renderer in dev;
- context variables (e.g. an invocation id) are merged into every event;
- secret-bearing keys are masked before rendering.

Quick start
-----------
    from tanda_relay.logging import setup_logging, get_logger

    setup_logging()  # once, at process start
    log = get_logger(__name__)
    log.info("invoke.confirmed", method="deposit", tx_hash="ab12...")

Environment
-----------
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: "json" (default) or "console"
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, Optional

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import JSONRenderer


# ------------------------------ Redaction ------------------------------------


REDACT_KEYS = {
    "authorization",
    "secret",
    "secret_key",
    "seed",
    "sponsor_secret",
    "sponsor_secret_key",
    "signer_secret",
    "private_key",
}


def _redact_secrets(_: logging.Logger, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for k in list(event_dict.keys()):
        if k.lower() in REDACT_KEYS and event_dict[k] is not None:
            event_dict[k] = "***"
    return event_dict


# ------------------------------ Setup ----------------------------------------


def _base_processors(service_name: str, include_stacktrace: bool) -> Iterable:
    yield structlog.stdlib.add_log_level
    yield structlog.processors.TimeStamper(fmt="iso", utc=True)
    yield merge_contextvars
    yield structlog.processors.StackInfoRenderer()
    if include_stacktrace:
        yield structlog.processors.format_exc_info
    yield _redact_secrets
    yield structlog.processors.UnicodeDecoder()

    def _ensure_service(_: logging.Logger, __: str, ev: Dict[str, Any]) -> Dict[str, Any]:
        ev.setdefault("service", service_name)
        return ev

    yield _ensure_service


def setup_logging(
    *,
    service_name: str = "tanda-relay",
    level: Optional[str | int] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure structlog + stdlib logging. Call once at process start.

    ``level`` and ``log_format`` default to $LOG_LEVEL / $LOG_FORMAT.
    """
    level = level or os.getenv("LOG_LEVEL", "").upper() or "INFO"
    log_format = (log_format or os.getenv("LOG_FORMAT", "") or "json").lower()
    include_stacktrace = log_format == "json"

    processors = list(_base_processors(service_name, include_stacktrace))

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)
    else:
        renderer = JSONRenderer(sort_keys=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                *processors,
            ],
        )
    )

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)

    # stellar_sdk and the HTTP stack are chatty at DEBUG
    for name in ("asyncio", "httpcore", "httpx", "stellar_sdk"):
        logging.getLogger(name).setLevel("WARNING")


def get_logger(name: Optional[str] = None) -> Any:
    """
    Lazy structlog proxy for ``name``.

    Nothing is bound here, so module-level loggers created at import time
    still pick up whatever ``setup_logging`` configures later.
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


# ------------------------------ Context helpers -------------------------------


def bind_invocation_context(**kv: Any) -> None:
    """Bind invocation-scoped pairs (e.g. ``invocation_id``, ``method``)."""
    structlog.contextvars.bind_contextvars(**kv)


def clear_invocation_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


__all__ = [
    "setup_logging",
    "get_logger",
    "bind_invocation_context",
    "clear_invocation_context",
]
