"""Application factory wiring sessions, the cache and the mux together."""
from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import anyio
from fastapi import FastAPI, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from .cache import Cache
from .config import Settings, load_settings
from .context import Context
from .middlewares import access_log, require_session
from .mux import Mux, MuxOptions
from .sessions import InvalidCredentials, MemStore
from .tokens import SESSION_COOKIE_NAME

logger = logging.getLogger("weblet.application")
access_logger = logging.getLogger("weblet.access")


class LoginRequest(BaseModel):
    name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CacheEntry(BaseModel):
    value: str
    ttl: int = 0


def _resolve_signing_key(settings: Settings) -> str:
    if settings.signing_key:
        return settings.signing_key
    logger.warning(
        "No signing key configured, using a random one. Sessions will not survive a restart."
    )
    return secrets.token_hex(32)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """Create the ASGI application.

    Users live in memory only; add them through ``app.state.store``.
    """

    settings = settings or load_settings()
    store = MemStore(
        _resolve_signing_key(settings),
        token_ttl=timedelta(seconds=settings.token_ttl),
    )
    cache = Cache(settings.cache_size)
    mux = Mux(MuxOptions(middlewares=[access_log(access_logger)]))
    session_required = require_session(store)

    def _issue(response: Response, token: str) -> None:
        store.write_session_header(response, token)
        store.write_session_cookie(response, token, secure=settings.secure_cookies)

    async def login(ctx: Context) -> Response:
        payload: LoginRequest = await ctx.decode_json(LoginRequest)
        try:
            token = store.create_session(payload.name, payload.password)
        except InvalidCredentials as exc:
            code = status.HTTP_401_UNAUTHORIZED
            raise ctx.error(code, "Invalid user name or password") from exc
        response = ctx.empty(status.HTTP_204_NO_CONTENT)
        _issue(response, token)
        return response

    async def logout(ctx: Context) -> Response:
        store.delete_session(ctx.state.session_token)
        response = ctx.empty(status.HTTP_204_NO_CONTENT)
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
        return response

    async def refresh(ctx: Context) -> Response:
        try:
            token = store.update_session(ctx.state.session_token)
        except InvalidCredentials as exc:
            code = status.HTTP_401_UNAUTHORIZED
            raise ctx.error(code, "Session expired") from exc
        response = ctx.empty(status.HTTP_204_NO_CONTENT)
        _issue(response, token)
        return response

    async def me(ctx: Context) -> Response:
        user = ctx.state.user
        return ctx.json(
            status.HTTP_200_OK,
            {
                "id": user.id,
                "name": user.name,
                "last_login": user.last_login.isoformat() if user.last_login else None,
            },
        )

    async def get_cached(ctx: Context) -> Response:
        key = ctx.param("key")
        value = cache.get(key)
        if value is None:
            return await ctx.not_found()
        return ctx.json(status.HTTP_200_OK, {"key": key, "value": value})

    async def put_cached(ctx: Context) -> Response:
        entry: CacheEntry = await ctx.decode_json(CacheEntry)
        ttl = entry.ttl if entry.ttl >= 1 else settings.cache_ttl
        cache.set(ctx.param("key"), entry.value, ttl)
        return ctx.empty(status.HTTP_204_NO_CONTENT)

    mux.register("POST", "/login", login)
    mux.register("POST", "/logout", logout, session_required)
    mux.register("POST", "/refresh", refresh, session_required)
    mux.register("GET", "/me", me, session_required)
    mux.register("GET", "/cache/{key}", get_cached, session_required)
    mux.register("PUT", "/cache/{key}", put_cached, session_required)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cancel_cache_gc = cache.start_gc(settings.cache_gc_interval)
        cancel_session_gc = store.start_gc(settings.cache_gc_interval)
        logger.info("Started cache sweeps every %.1fs", settings.cache_gc_interval)
        try:
            yield
        finally:
            await anyio.to_thread.run_sync(cancel_session_gc)
            await anyio.to_thread.run_sync(cancel_cache_gc)
            logger.info("Stopped cache sweeps")

    app = FastAPI(
        title="weblet",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.cache = cache
    app.state.mux = mux

    app.mount("/", mux)

    return app


__all__ = ["CacheEntry", "LoginRequest", "create_application"]
