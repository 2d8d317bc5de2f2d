"""Per-request context handed to every handler."""

from __future__ import annotations

import json
import logging
import posixpath
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterable, Dict, Iterable, Mapping, Optional, Type, TypeVar, Union

from fastapi import Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse
from pydantic import BaseModel

from .errors import WebError

if TYPE_CHECKING:  # pragma: no cover
    from .mux import Mux

ModelT = TypeVar("ModelT", bound=BaseModel)


class InvalidRedirectCode(ValueError):
    """Raised by :meth:`Context.redirect` for status codes outside 300..308."""


class NoSuchTemplate(LookupError):
    """Raised by :meth:`Context.render` for a template name that was never loaded."""


def _has_dot_prefix(path: str) -> bool:
    return any(part.startswith(".") for part in path.split("/"))


class Context:
    """Convenience wrapper around a request and the mux serving it."""

    def __init__(self, mux: "Mux", request: Request) -> None:
        self.mux = mux
        self.request = request
        self.params: Dict[str, Any] = dict(request.path_params)
        self.headers: Dict[str, str] = {}

    @property
    def state(self):
        return self.request.state

    @property
    def logger(self) -> logging.Logger:
        return self.mux.logger

    def set_header(self, key: str, value: str) -> None:
        """Set a header on the response this request ends up with."""

        self.headers[key] = value

    def get_header(self, key: str) -> str:
        return self.request.headers.get(key, "")

    def param(self, key: str) -> str:
        value = self.params.get(key)
        return "" if value is None else str(value)

    def error(self, status_code: int, message: str) -> WebError:
        """Build a client error, raise it to answer with ``status_code`` and ``message``."""

        return WebError.client(status_code, message)

    async def not_found(self) -> Response:
        return await self.mux.options.handle_not_found(self)

    def empty(self, status_code: int) -> Response:
        return Response(status_code=status_code)

    def redirect(self, status_code: int, url: str) -> Response:
        if status_code < 300 or status_code > 308:
            raise InvalidRedirectCode(f"invalid redirect code: {status_code}")
        return RedirectResponse(url, status_code=status_code)

    def bytes(self, status_code: int, data: bytes) -> Response:
        return Response(content=data, status_code=status_code)

    def string(self, status_code: int, data: str) -> Response:
        return PlainTextResponse(data, status_code=status_code, media_type="text/plain; charset=UTF-8")

    def html(self, status_code: int, data: str) -> Response:
        return HTMLResponse(data, status_code=status_code, media_type="text/html; charset=UTF-8")

    def stream(
        self,
        status_code: int,
        content: Union[Iterable[Any], AsyncIterable[Any]],
        media_type: Optional[str] = None,
    ) -> Response:
        return StreamingResponse(content, status_code=status_code, media_type=media_type)

    async def file(self, directory: Union[str, Path], path: str) -> Response:
        """Send a file below ``directory``.

        Dotfiles, directories, missing files and paths escaping ``directory``
        all get the not-found response.
        """

        cleaned = posixpath.normpath("/" + path.replace("\\", "/")).lstrip("/")
        if _has_dot_prefix(cleaned):
            return await self.not_found()

        root = Path(directory).resolve()
        target = (root / cleaned).resolve()
        if target != root and root not in target.parents:
            return await self.not_found()
        try:
            is_file = target.is_file()
        except OSError as exc:
            self.logger.error("File %s: %s", target, exc)
            return await self.not_found()
        if not is_file:
            return await self.not_found()
        return FileResponse(target)

    def render(self, status_code: int, name: str, data: Optional[Mapping[str, Any]] = None) -> Response:
        template = self.mux.options.templates.get(name)
        if template is None:
            raise NoSuchTemplate(f"invalid template name: {name}")
        # render fully before anything is sent
        body = template.render(dict(data or {}))
        return HTMLResponse(body, status_code=status_code, media_type="text/html; charset=UTF-8")

    def json(self, status_code: int, data: Any) -> Response:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        body = json.dumps(data, ensure_ascii=False) + "\n"
        return Response(
            content=body,
            status_code=status_code,
            media_type="application/json; charset=utf-8",
            headers={"X-Content-Type-Options": "nosniff"},
        )

    async def decode_json(self, model: Optional[Type[ModelT]] = None) -> Any:
        """Parse the request body as JSON, validated against ``model`` when given."""

        body = await self.request.body()
        try:
            if model is not None:
                return model.model_validate_json(body)
            return json.loads(body)
        except ValueError as exc:
            raise WebError.client(400, "Bad Request") from exc


__all__ = ["Context", "InvalidRedirectCode", "NoSuchTemplate"]
