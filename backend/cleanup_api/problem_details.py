"""
RFC 7807 (problem+json) responses for framework-level failures.

Routing misses and auth denials use this shape. Failures raised while a
cleanup route handles a request answer with `{ok: false, error}` instead
(see `errors.py`).
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import ORJSONResponse

from .settings import get_settings

PROBLEM_JSON = "application/problem+json"


def _default_title(status_code: int) -> str:
    if status_code >= 500:
        return "Internal Server Error"
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def request_id_of(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None) or request.headers.get("x-request-id")
    return str(rid) if rid else None


def problem_payload(
    *,
    request: Request,
    status_code: int,
    title: str | None = None,
    detail: str | None = None,
    type: str = "about:blank",
    extensions: dict[str, Any] | None = None,
) -> dict[str, Any]:
    optional = {
        "detail": str(detail) if detail else None,
        "instance": request.url.path or None,
        "requestId": request_id_of(request),
        # Extension members stay namespaced so they never shadow reserved keys.
        "extensions": extensions or None,
    }
    return {
        "type": type or "about:blank",
        "title": title or _default_title(int(status_code)),
        "status": int(status_code),
        **{k: v for k, v in optional.items() if v is not None},
    }


def problem_response(*, request: Request, status_code: int, detail: str | None = None, **kwargs: Any) -> ORJSONResponse:
    # Server error details never leave the process in production.
    if int(status_code) >= 500 and get_settings().is_production:
        detail = None
    return ORJSONResponse(
        status_code=int(status_code),
        content=problem_payload(request=request, status_code=status_code, detail=detail, **kwargs),
        media_type=PROBLEM_JSON,
    )
