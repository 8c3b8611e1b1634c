from __future__ import annotations

import re

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..auth.firebase import FirebaseAuthError, verify_bearer_token
from ..observability.logging import get_logger
from ..problem_details import problem_response

# GET /api/cleanup/{campaignId} is a public campaign page.
_PUBLIC_CAMPAIGN_READ = re.compile(r"^/api/cleanup/[^/]+$")


def is_public_path(method: str, path: str) -> bool:
    # "GET /" health is public.
    if path == "/":
        return True

    if method.upper() == "GET" and _PUBLIC_CAMPAIGN_READ.match(path):
        return True

    return False


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth:
        return None
    parts = str(auth).split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


async def require_auth(request: Request):
    path = request.url.path
    method = request.method.upper()

    # Let CORS preflight through without auth.
    # CORSMiddleware will handle preflight and add headers.
    if method == "OPTIONS":
        return

    # Only enforce auth for API routes.
    if not path.startswith("/api/"):
        return

    token = _bearer_token(request)

    if is_public_path(method, path):
        # Public reads still personalize (isParticipant) when a valid token is sent.
        if token:
            try:
                request.state.user = verify_bearer_token(token)
            except Exception:
                get_logger("auth_middleware").info("auth_optional_token_ignored", path=path)
        return

    if not token:
        raise HTTPException(status_code=401, detail="Authorization token required")

    try:
        user = verify_bearer_token(token)
    except FirebaseAuthError as e:
        raise HTTPException(status_code=int(getattr(e, "status_code", 401)), detail=str(e))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")

    request.state.user = user


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Auth enforcement as ASGI middleware.

    Important: this should be added *before* CORSMiddleware so CORS wraps all
    responses (including auth failures) and preflight works.
    """

    async def dispatch(self, request: Request, call_next):
        log = get_logger("auth_middleware")
        try:
            await require_auth(request)
        except HTTPException as exc:
            status_code = int(exc.status_code)
            # Log auth failures (avoid PII)
            log.info(
                "auth_middleware_denied",
                status_code=status_code,
                path=request.url.path,
            )
            return problem_response(
                request=request,
                status_code=status_code,
                title="Unauthorized" if status_code == 401 else None,
                detail=str(exc.detail) if isinstance(exc.detail, str) else None,
            )
        return await call_next(request)
