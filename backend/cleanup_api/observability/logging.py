from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from .context import get_request_id

_CONFIGURED = False


def _add_request_id(_: Any, __: str, event_dict: dict) -> dict:
    rid = get_request_id()
    if rid:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _drop_none_values(_: Any, __: str, event_dict: dict) -> dict:
    return {k: v for k, v in event_dict.items() if v is not None}


def _static_fields(fields: dict[str, Any]):
    def _add(_: Any, __: str, event_dict: dict) -> dict:
        for k, v in fields.items():
            event_dict.setdefault(k, v)
        return event_dict

    return _add


def configure_logging(*, level: str | int = "INFO", service: str | None = None, environment: str | None = None) -> None:
    """
    One JSON object per line on stdout, for both structlog and stdlib loggers
    (uvicorn, botocore, httpx). Every line carries the current request id.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    shared: list[Any] = [
        _add_request_id,
        _static_fields({"service": service, "environment": environment}),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                _drop_none_values,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # uvicorn installs its own handlers; route everything through root instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers = []
        uv.propagate = True

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
