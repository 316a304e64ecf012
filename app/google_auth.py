"""Service-account OAuth tokens for Google REST APIs (JWT bearer grant)."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import httpx
from jose import jwt
from jose.exceptions import JOSEError


DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
_ASSERTION_TTL_S = 3600
_REFRESH_MARGIN_S = 60

_logger = logging.getLogger("sheetbase.auth")


class GoogleAuthError(RuntimeError):
    pass


class ServiceAccountTokens:
    def __init__(
        self,
        info: dict,
        scopes: list[str],
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._email = info.get("client_email") or ""
        self._private_key = info.get("private_key") or ""
        self._key_id = info.get("private_key_id")
        self._token_uri = info.get("token_uri") or DEFAULT_TOKEN_URI
        self._scopes = list(scopes)
        self._client = client or httpx.Client(timeout=30.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at = 0.0

    def _assertion(self, now: int) -> str:
        claims = {
            "iss": self._email,
            "scope": " ".join(self._scopes),
            "aud": self._token_uri,
            "iat": now,
            "exp": now + _ASSERTION_TTL_S,
        }
        headers = {"kid": self._key_id} if self._key_id else None
        try:
            return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)
        except JOSEError as exc:
            raise GoogleAuthError(f"Could not sign service account assertion: {exc}") from exc

    def _fetch(self) -> None:
        now = int(self._clock())
        data = {"grant_type": _GRANT_TYPE, "assertion": self._assertion(now)}
        try:
            res = self._client.post(self._token_uri, data=data)
        except httpx.HTTPError as exc:
            raise GoogleAuthError(f"Token request failed: {exc}") from exc
        if res.status_code >= 400:
            raise GoogleAuthError(f"token_exchange_failed:{res.status_code}:{res.text}")
        body = res.json()
        token = body.get("access_token")
        if not token:
            raise GoogleAuthError("Token response missing access_token")
        self._token = token
        self._expires_at = now + float(body.get("expires_in") or _ASSERTION_TTL_S)
        _logger.info("google_token_refreshed account=%s expires_in=%s", self._email, body.get("expires_in"))

    def token(self) -> str:
        with self._lock:
            if not self._token or self._clock() >= self._expires_at - _REFRESH_MARGIN_S:
                self._fetch()
            return self._token

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token()}"}
