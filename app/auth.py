"""Password hashing and HS256 bearer tokens."""

from __future__ import annotations

import base64
import hmac
import logging
import os
import time

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from fastapi import Request
from jose import jwt
from jose.exceptions import JWTError


_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 32
_ALGORITHM = "HS256"

_logger = logging.getLogger("sheetbase.auth")


class AuthError(Exception):
    def __init__(self, code: str, message: str, status: int = 401) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


def _kdf(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=_KEY_LEN, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    digest = _kdf(salt).derive(password.encode("utf-8"))
    return f"scrypt${_b64(salt)}${_b64(digest)}"


def verify_password(password: str, stored: str) -> bool:
    parts = (stored or "").split("$")
    if len(parts) != 3 or parts[0] != "scrypt":
        return False
    try:
        salt = base64.urlsafe_b64decode(parts[1])
        expected = base64.urlsafe_b64decode(parts[2])
    except ValueError:
        return False
    try:
        _kdf(salt).verify(password.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


def issue_token(user: dict, secret: str, ttl_s: int, now: float | None = None) -> str:
    if not secret:
        raise AuthError("AUTH_NOT_CONFIGURED", "Token secret is not configured", status=503)
    issued = int(now if now is not None else time.time())
    claims = {
        "sub": user.get("id"),
        "email": user.get("email"),
        "role": user.get("role") or "user",
        "iat": issued,
        "exp": issued + int(ttl_s),
    }
    return jwt.encode(claims, secret, algorithm=_ALGORITHM)


def decode_token(token: str, secret: str) -> dict:
    if not secret:
        raise AuthError("AUTH_NOT_CONFIGURED", "Token secret is not configured", status=503)
    try:
        return jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError as exc:
        raise AuthError("AUTH_INVALID_TOKEN", "Invalid bearer token") from exc


def _get_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def current_actor(request: Request) -> dict:
    token = _get_bearer_token(request)
    if not token:
        _logger.warning("auth_missing_token path=%s", request.url.path)
        raise AuthError("AUTH_MISSING_TOKEN", "Missing bearer token")
    try:
        claims = decode_token(token, request.app.state.settings.jwt_secret)
    except AuthError as exc:
        _logger.warning("auth_invalid_token path=%s error=%s", request.url.path, exc.message)
        raise
    return {"id": claims.get("sub"), "email": claims.get("email"), "role": claims.get("role"), "claims": claims}


def admin_actor(request: Request) -> dict:
    actor = current_actor(request)
    if actor.get("role") != "admin":
        raise AuthError("FORBIDDEN", "Admin access required", status=403)
    return actor


def same_actor(actor: dict, user_id: str) -> bool:
    return hmac.compare_digest(str(actor.get("id") or ""), str(user_id or ""))
