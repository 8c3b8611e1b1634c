from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx
from cachetools import TTLCache
from jose import JWTError, jwt

from ..settings import settings

# Public signing keys for Firebase Auth ID tokens (JWK set).
FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)


@dataclass
class VerifiedUser:
    uid: str
    email: str | None
    claims: dict[str, Any]


class FirebaseAuthError(Exception):
    status_code = 401


_JWKS_CACHE: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=4, ttl=60 * 60)


def _project_id() -> str:
    if not settings.firebase_project_id:
        raise RuntimeError("FIREBASE_PROJECT_ID is not set")
    return str(settings.firebase_project_id)


def _issuer() -> str:
    return f"https://securetoken.google.com/{_project_id()}"


def _get_jwks() -> dict[str, Any]:
    cached = _JWKS_CACHE.get(FIREBASE_JWKS_URL)
    if cached:
        return cached

    with httpx.Client(timeout=10.0) as client:
        resp = client.get(FIREBASE_JWKS_URL)
        resp.raise_for_status()
        jwks = resp.json()

    _JWKS_CACHE[FIREBASE_JWKS_URL] = jwks
    return jwks


def verify_bearer_token(token: str) -> VerifiedUser:
    if not token:
        raise FirebaseAuthError("missing token")

    project_id = _project_id()
    jwks = _get_jwks()

    try:
        claims = jwt.decode(
            token,
            jwks,
            algorithms=["RS256"],
            audience=project_id,
            issuer=_issuer(),
            options={"verify_aud": True, "verify_iss": True},
        )
    except JWTError as e:
        raise FirebaseAuthError("Invalid token") from e

    # Firebase additionally requires auth_time in the past.
    auth_time = claims.get("auth_time")
    if auth_time and int(auth_time) > int(time.time()) + 60:
        raise FirebaseAuthError("Invalid token")

    uid = str(claims.get("user_id") or claims.get("sub") or "").strip()
    if not uid:
        raise FirebaseAuthError("Invalid token")

    email = claims.get("email")
    if email is not None:
        email = str(email)

    return VerifiedUser(uid=uid, email=email, claims=claims)
