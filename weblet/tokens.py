"""Signed, expiring session tokens.

A raw token is a 64 character hex string with 256 bits of digest over 512 bits
of random data. On the wire it travels as::

    base64url("<unix_timestamp>.<token>.<hmac_sha256_hex>")

The MAC covers ``"<unix_timestamp>.<token>"`` so the timestamp can not be
moved forward without the signing key.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

TOKEN_LENGTH = 64
SESSION_COOKIE_NAME = "session"

Clock = Callable[[], datetime]

_BASE64URL = re.compile(r"[A-Za-z0-9_-]*")


class DecodeError(ValueError):
    """Raised when an encoded token is malformed, tampered with or expired.

    The message is identical for every cause so callers can not tell them
    apart. ``reason`` holds the concrete cause for logging.
    """

    def __init__(self, reason: str) -> None:
        super().__init__("invalid or expired token")
        self.reason = reason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_payload(payload: bytes) -> str:
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def _decode_payload(value: str) -> bytes:
    if not _BASE64URL.fullmatch(value):
        raise DecodeError("payload is not base64url")
    try:
        return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"failed to decode payload: {exc}") from exc


def _sign(payload: bytes, key: bytes) -> bytes:
    return hmac.new(key, payload, hashlib.sha256).hexdigest().encode("ascii")


class TokenFactory:
    """Generate, encode and verify session tokens without server side state."""

    def __init__(self, signing_key: bytes | str, expires: timedelta, *, clock: Optional[Clock] = None) -> None:
        if isinstance(signing_key, str):
            signing_key = signing_key.encode("utf-8")
        self._signing_key = bytes(signing_key)
        self._expires = expires
        self._clock: Clock = clock or _utcnow

    @property
    def expires(self) -> timedelta:
        return self._expires

    @property
    def cookie_max_age(self) -> int:
        return int(self._expires.total_seconds())

    def generate(self) -> str:
        try:
            seed = secrets.token_bytes(64)
        except (OSError, NotImplementedError) as exc:
            raise RuntimeError("system failure for the secure random source") from exc
        return hashlib.sha256(seed).hexdigest()

    def encode(self, token: str) -> str:
        if len(token) != TOKEN_LENGTH:
            # only tokens from generate(), cookies are capped at 4096 bytes
            raise ValueError(f"token must be {TOKEN_LENGTH} characters long")

        timestamp = int(self._clock().timestamp())
        payload = f"{timestamp}.{token}".encode("utf-8")
        mac = _sign(payload, self._signing_key)
        return _encode_payload(payload + b"." + mac)

    def decode(self, encoded: str) -> str:
        payload = _decode_payload(encoded)

        parts = payload.split(b".", 2)
        if len(parts) != 3:
            raise DecodeError("failed to split payload")
        timestamp_raw, token_raw, mac = parts

        signed = payload[: len(payload) - len(mac) - 1]
        if not hmac.compare_digest(_sign(signed, self._signing_key), mac):
            raise DecodeError("invalid hmac")

        try:
            timestamp = int(timestamp_raw.decode("ascii"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodeError("failed to parse timestamp") from exc

        oldest = int((self._clock() - self._expires).timestamp())
        if timestamp < oldest:
            raise DecodeError("timestamp expired")

        if len(token_raw) != TOKEN_LENGTH:
            raise DecodeError("token has the wrong length")
        try:
            return token_raw.decode("ascii")
        except UnicodeDecodeError as exc:
            raise DecodeError("token is not ascii") from exc

    def write_session_header(self, response: Response, token: str) -> None:
        response.headers["Authorization"] = "Bearer " + self.encode(token)

    def write_session_cookie(self, response: Response, token: str, *, secure: bool = False) -> None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            self.encode(token),
            max_age=self.cookie_max_age,
            secure=secure,
            httponly=True,
            samesite="strict",
            path="/",
        )

    async def get_session_token(self, request: Request) -> str:
        """Return the raw token from the bearer header, or else the session cookie."""

        bearer = HTTPBearer(auto_error=False)
        credentials: HTTPAuthorizationCredentials | None = await bearer(request)  # type: ignore[assignment]
        if credentials is not None:
            return self.decode(credentials.credentials)

        scheme, _, _ = request.headers.get("Authorization", "").strip().partition(" ")
        if scheme.lower() == "bearer":
            raise DecodeError("empty bearer credentials")

        cookie = request.cookies.get(SESSION_COOKIE_NAME)
        if not cookie:
            raise DecodeError("no session header or cookie")
        return self.decode(cookie)


__all__ = ["Clock", "DecodeError", "SESSION_COOKIE_NAME", "TOKEN_LENGTH", "TokenFactory"]
