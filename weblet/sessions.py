"""In-memory user accounts and login sessions."""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import Request, Response
from passlib.context import CryptContext

from .cache import Cache, CancelFunc
from .models import User
from .tokens import Clock, TokenFactory

logger = logging.getLogger("weblet.sessions")

DEFAULT_TOKEN_TTL = timedelta(seconds=60)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_ID_TIME_CHARS = 9
_ID_RANDOM_CHARS = 7

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidCredentials(Exception):
    """Raised when a login or session refresh can not be honoured."""


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        # oversized passwords and malformed hashes
        return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(ts: datetime) -> str:
    """Return a 16 character id: base36 milliseconds followed by random base36 chars.

    Ids created later sort after earlier ones as long as the timestamp fits
    in 9 base36 digits.
    """

    millis = int(ts.timestamp() * 1000)
    head = []
    for _ in range(_ID_TIME_CHARS):
        millis, digit = divmod(millis, len(_BASE36))
        head.append(_BASE36[digit])
    tail = "".join(secrets.choice(_BASE36) for _ in range(_ID_RANDOM_CHARS))
    return "".join(reversed(head)) + tail


class MemStore:
    """Keep users and their session tokens in process memory.

    Session tokens live in a :class:`~weblet.cache.Cache` and expire together
    with the signed token handed to the client.
    """

    def __init__(
        self,
        signing_key: bytes | str,
        *,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Clock] = None,
    ) -> None:
        self._clock: Clock = clock or _utcnow
        self._token_ttl = token_ttl
        self._tokens = TokenFactory(signing_key, token_ttl, clock=self._clock)
        self._users: Dict[str, User] = {}
        self._sessions = Cache(clock=lambda: self._clock().timestamp())
        self._lock = threading.Lock()

    @property
    def tokens(self) -> TokenFactory:
        return self._tokens

    def _session_ttl(self) -> int:
        return max(1, int(self._token_ttl.total_seconds()))

    def _find_by_name(self, name: str) -> Optional[User]:
        for user in self._users.values():
            if user.name == name:
                return user
        return None

    def create_user(self, name: str, password: str) -> User:
        name = name.strip()
        if not name:
            raise ValueError("User name must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        password_hash = _pwd_context.hash(password)
        with self._lock:
            if self._find_by_name(name) is not None:
                raise ValueError(f"User name '{name}' is already taken")
            user = User(id=new_id(self._clock()), name=name, password_hash=password_hash)
            self._users[user.id] = user
        logger.info("Created user %s", user.id)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def update_user(self, user: User) -> None:
        with self._lock:
            if user.id not in self._users:
                raise KeyError(f"Unknown user '{user.id}'")
            self._users[user.id] = user

    def delete_user(self, user: User) -> None:
        with self._lock:
            self._users.pop(user.id, None)

    def create_session(self, name: str, password: str) -> str:
        """Check the credentials and return a fresh raw session token."""

        with self._lock:
            user = self._find_by_name(name)
        if user is None:
            _pwd_context.dummy_verify()
            logger.warning("Failed login attempt for unknown user %r", name)
            raise InvalidCredentials("invalid user name or password")
        if not _verify_password(password, user.password_hash):
            logger.warning("Failed login attempt for user %s", user.id)
            raise InvalidCredentials("invalid user name or password")

        user = replace(user, last_login=self._clock())
        try:
            self.update_user(user)
        except KeyError as exc:
            raise InvalidCredentials("user was removed during login") from exc

        token = self._tokens.generate()
        self._sessions.set(token, user.id, self._session_ttl())
        logger.info("User %s signed in", user.id)
        return token

    def get_session(self, token: str) -> Optional[User]:
        user_id = self._sessions.get(token)
        if user_id is None:
            return None
        return self.get_user(user_id)

    def update_session(self, token: str) -> str:
        """Swap ``token`` for a new one, the old token stops working."""

        user = self.get_session(token)
        if user is None:
            raise InvalidCredentials("invalid session token")
        new_token = self._tokens.generate()
        self._sessions.set(new_token, user.id, self._session_ttl())
        self._sessions.delete(token)
        return new_token

    def delete_session(self, token: str) -> None:
        self._sessions.delete(token)

    def start_gc(self, interval: float = 0) -> CancelFunc:
        return self._sessions.start_gc(interval)

    def write_session_header(self, response: Response, token: str) -> None:
        self._tokens.write_session_header(response, token)

    def write_session_cookie(self, response: Response, token: str, *, secure: bool = False) -> None:
        self._tokens.write_session_cookie(response, token, secure=secure)

    async def get_session_token(self, request: Request) -> str:
        return await self._tokens.get_session_token(request)


__all__ = ["DEFAULT_TOKEN_TTL", "InvalidCredentials", "MemStore", "new_id"]
