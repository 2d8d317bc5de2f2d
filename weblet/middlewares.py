"""Reusable middlewares: access log, HTTP Basic Auth and session checks."""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import status
from fastapi.responses import Response

from .context import Context
from .errors import status_text
from .mux import Handler, Middleware
from .security import BasicAuthCheck, read_basic_auth, single_basic_auth
from .sessions import MemStore
from .tokens import DecodeError

logger = logging.getLogger("weblet.auth")


def _body_size(response: Response) -> int:
    length = response.headers.get("content-length")
    if length and length.isdigit():
        return int(length)
    body = getattr(response, "body", None)
    return len(body) if body else 0


def access_log(log: Optional[logging.Logger]) -> Middleware:
    """Log one line per request to ``log``.

    Columns: host, client address, request line, status code, body size in
    kb, run time, referer and user agent.
    """

    if log is None:
        raise ValueError("access_log: missing logger")

    def middleware(next_handler: Handler) -> Handler:
        async def handler(ctx: Context) -> Optional[Response]:
            start = time.perf_counter()
            response = await next_handler(ctx)
            elapsed = time.perf_counter() - start

            request = ctx.request
            status_code = response.status_code if response is not None else status.HTTP_200_OK
            size = _body_size(response) if response is not None else 0
            client = f"{request.client.host}:{request.client.port}" if request.client else "-"
            protocol = "HTTP/" + request.scope.get("http_version", "1.1")
            log.info(
                '%s %s "%s %s %s" %d %.1fkb %.3fms "%s" "%s"',
                request.headers.get("host", ""),
                client,
                request.method,
                request.url.path,
                protocol,
                status_code,
                size / 1024.0,
                elapsed * 1000.0,
                request.headers.get("referer", ""),
                request.headers.get("user-agent", ""),
            )
            return response

        return handler

    return middleware


def basic_auth_with(check: BasicAuthCheck) -> Middleware:
    """Require HTTP Basic Auth credentials accepted by ``check``."""

    def middleware(next_handler: Handler) -> Handler:
        async def handler(ctx: Context) -> Optional[Response]:
            credentials = await read_basic_auth(ctx.request)
            if credentials is None or not check(*credentials):
                ctx.set_header("WWW-Authenticate", 'Basic realm="Restricted"')
                code = status.HTTP_401_UNAUTHORIZED
                raise ctx.error(code, status_text(code))
            return await next_handler(ctx)

        return handler

    return middleware


def basic_auth(username: str, password: str) -> Middleware:
    return basic_auth_with(single_basic_auth(username, password))


def require_session(store: MemStore) -> Middleware:
    """Only let requests with a valid session through.

    The user is stored on ``ctx.state.user`` and the raw token on
    ``ctx.state.session_token``.
    """

    def middleware(next_handler: Handler) -> Handler:
        async def handler(ctx: Context) -> Optional[Response]:
            code = status.HTTP_401_UNAUTHORIZED
            try:
                token = await store.get_session_token(ctx.request)
            except DecodeError as exc:
                logger.debug("Rejected session token: %s", exc.reason)
                ctx.set_header("WWW-Authenticate", "Bearer")
                raise ctx.error(code, status_text(code)) from exc

            user = store.get_session(token)
            if user is None:
                logger.debug("Session token has no live session")
                ctx.set_header("WWW-Authenticate", "Bearer")
                raise ctx.error(code, status_text(code))

            ctx.state.user = user
            ctx.state.session_token = token
            return await next_handler(ctx)

        return handler

    return middleware


__all__ = ["access_log", "basic_auth", "basic_auth_with", "require_session"]
