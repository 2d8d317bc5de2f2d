"""Handler registration and dispatch on top of Starlette's router."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union

from fastapi import Request
from fastapi.responses import Response
from jinja2 import Template
from starlette.middleware.exceptions import ExceptionMiddleware
from starlette.routing import Router
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

from .context import Context
from .errors import ErrorKind, WebError, simple_error_handler, simple_not_found_handler

logger = logging.getLogger("weblet.mux")

Handler = Callable[[Context], Awaitable[Optional[Response]]]
Middleware = Callable[[Handler], Handler]
RegisterFunc = Callable[[str, str, Handler], None]
NotFoundHandler = Callable[[Context], Awaitable[Response]]
ErrorHandler = Callable[[Context, WebError], Awaitable[Response]]


@dataclass
class MuxOptions:
    """Optional settings for a :class:`Mux`."""

    logger: Optional[logging.Logger] = None
    # Templates for Context.render(), see weblet.templates.load_templates()
    templates: Dict[str, Template] = field(default_factory=dict)
    handle_not_found: NotFoundHandler = simple_not_found_handler
    handle_error: ErrorHandler = simple_error_handler
    # Applied to every handler, before any per-route middleware
    middlewares: List[Middleware] = field(default_factory=list)


def join_path(prefix: str, path: str) -> str:
    parts = [part.strip("/") for part in (prefix, path)]
    return "/" + "/".join(part for part in parts if part)


class Mux:
    """ASGI application that registers handlers and middleware with sane defaults.

    Routing is left to :class:`starlette.routing.Router`: trailing slashes are
    redirected and a known path requested with the wrong method is answered
    with ``405 Method Not Allowed``. Exceptions raised by handlers or
    middleware never escape; they are logged and handed to
    ``MuxOptions.handle_error``.
    """

    def __init__(self, options: Optional[MuxOptions] = None) -> None:
        self.options = options or MuxOptions()
        self.logger = self.options.logger or logger
        self._router = Router(redirect_slashes=True, default=self._handle_not_found)
        self._app = ExceptionMiddleware(self._router)
        self._not_found = self.wrap(self.options.handle_not_found)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._app(scope, receive, send)

    async def _handle_not_found(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await WebSocketClose()(scope, receive, send)
            return
        response = await self._run(self._not_found, Request(scope, receive))
        await response(scope, receive, send)

    async def _run(self, handler: Handler, request: Request) -> Response:
        ctx = Context(self, request)
        response = await handler(ctx)
        for key, value in ctx.headers.items():
            response.headers.setdefault(key, value)
        return response

    def _log_error(self, ctx: Context, error: WebError) -> None:
        request = ctx.request
        if error.kind is ErrorKind.CLIENT:
            return
        if error.kind is ErrorKind.PANIC:
            self.logger.error(
                "Panic: %s %s %s: %s\n%s",
                request.client.host if request.client else "-",
                request.method,
                request.url.path,
                error.message,
                error.stack,
            )
            return
        self.logger.error(
            "Error: %s %s %s: %s",
            request.client.host if request.client else "-",
            request.method,
            request.url.path,
            error.message,
            exc_info=error.cause,
        )

    def _recover(self, handler: Handler) -> Handler:
        async def recovered(ctx: Context) -> Response:
            try:
                response = await handler(ctx)
                return response if response is not None else Response(status_code=200)
            except WebError as exc:
                error = exc
            except Exception as exc:
                error = WebError.panic(exc)
            self._log_error(ctx, error)
            return await self.options.handle_error(ctx, error)

        return recovered

    def wrap(self, handler: Handler, *middlewares: Middleware) -> Handler:
        """Wrap ``handler`` in the global and the given middlewares.

        The first middleware runs first and the handler runs last. Every layer
        is guarded so errors turn into responses where they are raised.
        """

        chain = [*self.options.middlewares, *middlewares]
        wrapped = self._recover(handler)
        for middleware in reversed(chain):
            if middleware is None:
                raise ValueError("Trying to use None as middleware")
            wrapped = self._recover(middleware(wrapped))
        return wrapped

    def register(self, method: str, path: str, handler: Handler, *middlewares: Middleware) -> None:
        """Register ``handler`` for ``method`` requests on ``path``.

        ``path`` uses the router's syntax, e.g. ``/users/{user_id}`` or
        ``/files/{filepath:path}``.
        """

        wrapped = self.wrap(handler, *middlewares)

        async def endpoint(request: Request) -> Response:
            return await self._run(wrapped, request)

        self._router.add_route(path, endpoint, methods=[method.upper()])

    def register_prefix(self, prefix: str, *middlewares: Middleware) -> RegisterFunc:
        """Return a function registering handlers below ``prefix`` with ``middlewares``."""

        def register(method: str, path: str, handler: Handler) -> None:
            self.register(method, join_path(prefix, path), handler, *middlewares)

        return register

    def file(self, url: str, file: Union[str, Path], *middlewares: Middleware) -> None:
        """Serve a single file on ``GET url``.

        The file must exist at registration time. If it disappears later the
        not-found response is sent instead.
        """

        path = Path(file)
        if not path.exists():
            raise FileNotFoundError(f"file doesn't exist: {file}")

        async def serve_file(ctx: Context) -> Response:
            return await ctx.file(path.parent, path.name)

        self.register("GET", url, serve_file, *middlewares)

    def static(self, prefix: str, directory: Union[str, Path], *middlewares: Middleware) -> None:
        """Serve every file below ``directory`` on ``GET prefix/...``."""

        async def serve_static(ctx: Context) -> Response:
            return await ctx.file(directory, ctx.param("filepath"))

        self.register("GET", join_path(prefix, "{filepath:path}"), serve_static, *middlewares)


__all__ = [
    "ErrorHandler",
    "Handler",
    "Middleware",
    "Mux",
    "MuxOptions",
    "NotFoundHandler",
    "RegisterFunc",
    "join_path",
]
