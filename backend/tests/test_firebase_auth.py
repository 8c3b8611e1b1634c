from __future__ import annotations

import time

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from cleanup_api.auth import firebase
from cleanup_api.auth.firebase import FirebaseAuthError, verify_bearer_token
from cleanup_api.middleware.auth import is_public_path

PROJECT_ID = "cleanup-test"


@pytest.fixture(scope="module")
def signing_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def firebase_env(monkeypatch, signing_key):
    public = jwk.construct(signing_key, "RS256").public_key().to_dict()
    public["kid"] = "k1"
    monkeypatch.setattr(firebase.settings, "firebase_project_id", PROJECT_ID)
    monkeypatch.setattr(firebase, "_get_jwks", lambda: {"keys": [public]})


def _token(signing_key: str, **overrides) -> str:
    now = int(time.time())
    claims = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": "uid_123",
        "user_id": "uid_123",
        "email": "a@example.com",
        "iat": now - 10,
        "exp": now + 3600,
        "auth_time": now - 10,
    }
    claims.update(overrides)
    return jwt.encode(claims, signing_key, algorithm="RS256", headers={"kid": "k1"})


def test_valid_token(firebase_env, signing_key):
    user = verify_bearer_token(_token(signing_key))
    assert user.uid == "uid_123"
    assert user.email == "a@example.com"


def test_uid_falls_back_to_sub(firebase_env, signing_key):
    user = verify_bearer_token(_token(signing_key, user_id=None, sub="uid_sub"))
    assert user.uid == "uid_sub"


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "another-project"},
        {"iss": "https://securetoken.google.com/another-project"},
        {"exp": int(time.time()) - 60},
        {"auth_time": int(time.time()) + 3600},
    ],
)
def test_rejected_tokens(firebase_env, signing_key, overrides):
    with pytest.raises(FirebaseAuthError):
        verify_bearer_token(_token(signing_key, **overrides))


def test_garbage_token(firebase_env):
    with pytest.raises(FirebaseAuthError):
        verify_bearer_token("not-a-jwt")


@pytest.mark.parametrize(
    ("method", "path", "public"),
    [
        ("GET", "/", True),
        ("GET", "/api/cleanup/camp_1", True),
        ("POST", "/api/cleanup/create", False),
        ("POST", "/api/cleanup/join", False),
        ("GET", "/api/cleanup/camp_1/participants", False),
    ],
)
def test_public_paths(method, path, public):
    assert is_public_path(method, path) is public
