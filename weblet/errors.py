"""Error kinds and their translation into HTTP responses."""
from __future__ import annotations

import traceback
from enum import Enum
from http import HTTPStatus
from typing import TYPE_CHECKING, Optional

from fastapi import status
from fastapi.responses import PlainTextResponse, Response

if TYPE_CHECKING:  # pragma: no cover
    from .context import Context


class ErrorKind(str, Enum):
    """Classifies a handler failure for the dispatch layer."""

    CLIENT = "client"
    SERVER = "server"
    PANIC = "panic"


class WebError(Exception):
    """A handler failure carrying the HTTP status and message to respond with.

    Client errors are sent back unaltered. Server errors and panics are logged
    and answered with a generic ``500 Internal Server Error``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        status_code: int,
        message: str,
        *,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status_code
        self.message = message
        self.cause = cause

    @classmethod
    def client(cls, status_code: int, message: str) -> "WebError":
        return cls(ErrorKind.CLIENT, status_code, message)

    @classmethod
    def server(cls, message: str, cause: Optional[BaseException] = None) -> "WebError":
        return cls(ErrorKind.SERVER, status.HTTP_500_INTERNAL_SERVER_ERROR, message, cause=cause)

    @classmethod
    def panic(cls, exc: BaseException) -> "WebError":
        return cls(ErrorKind.PANIC, status.HTTP_500_INTERNAL_SERVER_ERROR, repr(exc), cause=exc)

    @property
    def stack(self) -> str:
        """Formatted traceback of the underlying exception, if any."""

        if self.cause is None:
            return ""
        return "".join(traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__))

    def __str__(self) -> str:
        if self.kind is ErrorKind.CLIENT:
            return f"Error: {self.message!r}"
        return f"{self.kind.value.capitalize()}: {self.message}"


def status_text(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def error_response(status_code: int, message: str) -> Response:
    """Plain text error response with sniffing disabled."""

    return PlainTextResponse(
        message + "\n",
        status_code=status_code,
        media_type="text/plain; charset=utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


async def simple_error_handler(ctx: "Context", error: WebError) -> Response:
    """Default error handler.

    Client errors keep their status code and message, everything else is
    hidden behind a ``500 Internal Server Error``.
    """

    if error.kind is ErrorKind.CLIENT:
        return error_response(error.status, error.message)
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return error_response(code, status_text(code))


async def simple_not_found_handler(ctx: "Context") -> Response:
    code = status.HTTP_404_NOT_FOUND
    return error_response(code, status_text(code))


__all__ = [
    "ErrorKind",
    "WebError",
    "error_response",
    "simple_error_handler",
    "simple_not_found_handler",
    "status_text",
]
