"""Credential checks using constant-time comparisons."""
from __future__ import annotations

import hashlib
import hmac
from typing import Callable, Optional, Tuple

from fastapi import HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

BasicAuthCheck = Callable[[str, str], bool]


def single_basic_auth(default_user: str, default_password: str) -> BasicAuthCheck:
    """Return a check accepting only ``default_user`` / ``default_password``.

    Both sides are hashed first so the comparison time does not depend on the
    length of the inputs.
    """

    expected_user = hashlib.sha256(default_user.encode("utf-8")).digest()
    expected_password = hashlib.sha256(default_password.encode("utf-8")).digest()

    def check(user: str, password: str) -> bool:
        user_digest = hashlib.sha256(user.encode("utf-8")).digest()
        password_digest = hashlib.sha256(password.encode("utf-8")).digest()
        user_ok = hmac.compare_digest(expected_user, user_digest)
        password_ok = hmac.compare_digest(expected_password, password_digest)
        return user_ok and password_ok

    return check


async def read_basic_auth(request: Request) -> Optional[Tuple[str, str]]:
    """Return the user/password pair from the ``Authorization`` header, if any."""

    basic = HTTPBasic(auto_error=False)
    try:
        credentials: HTTPBasicCredentials | None = await basic(request)  # type: ignore[assignment]
    except HTTPException:
        # malformed base64 or a missing colon
        return None
    if credentials is None:
        return None
    return credentials.username, credentials.password


__all__ = ["BasicAuthCheck", "read_basic_auth", "single_basic_auth"]
