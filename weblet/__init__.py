"""Small web toolkit: a guarded mux, signed session tokens and an expiring cache."""

from __future__ import annotations

from typing import Any

from .cache import Cache
from .context import Context
from .errors import ErrorKind, WebError
from .mux import Mux, MuxOptions
from .sessions import MemStore
from .tokens import DecodeError, TokenFactory


def create_application(*args: Any, **kwargs: Any):
    """Factory function that returns the ASGI application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Cache",
    "Context",
    "DecodeError",
    "ErrorKind",
    "MemStore",
    "Mux",
    "MuxOptions",
    "TokenFactory",
    "WebError",
    "create_application",
]
