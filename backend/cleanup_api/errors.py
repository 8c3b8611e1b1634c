from __future__ import annotations

from fastapi import Request
from fastapi.responses import ORJSONResponse

from .domain.cleanup.errors import CleanupError, TransactionConflict
from .observability.logging import get_logger
from .problem_details import request_id_of
from .settings import get_settings

CLEANUP_PATH_PREFIX = "/api/cleanup/"


def error_payload(request: Request, message: str) -> dict[str, object]:
    # Shape the mobile and web clients already parse: { ok: false, error }.
    payload: dict[str, object] = {"ok": False, "error": message}
    rid = request_id_of(request)
    if rid:
        payload["requestId"] = rid
    return payload


def is_cleanup_route(request: Request) -> bool:
    return str(request.url.path).startswith(CLEANUP_PATH_PREFIX)


def cleanup_failure_response(request: Request, status_code: int, message: str | None) -> ORJSONResponse:
    """
    Render a non-domain failure on a cleanup route as `{ok: false, error}`.

    Server error messages are replaced with a generic one in production.
    """
    status_code = int(status_code)
    if status_code >= 500 and get_settings().is_production:
        message = None
    if not message:
        message = "Internal server error" if status_code >= 500 else "Invalid request"
    return ORJSONResponse(status_code=status_code, content=error_payload(request, message))


def cleanup_error_handler(request: Request, exc: CleanupError) -> ORJSONResponse:
    status_code = int(exc.status_code)
    log = get_logger("cleanup.errors")
    fields = dict(
        error_kind=type(exc).__name__,
        error=exc.message,
        status_code=status_code,
        path=str(request.url.path),
        cause=repr(exc.cause) if exc.cause else None,
    )
    if status_code >= 500:
        log.error("cleanup_request_failed", **fields)
    else:
        log.info("cleanup_request_rejected", **fields)

    message = exc.message
    if isinstance(exc, TransactionConflict):
        message = "Campaign is busy, please retry"
    return ORJSONResponse(status_code=status_code, content=error_payload(request, message))
