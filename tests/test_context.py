"""Tests for the response helpers on :class:`weblet.context.Context`."""

from __future__ import annotations

import json

from fastapi.testclient import TestClient
from pydantic import BaseModel

from weblet.context import Context
from weblet.mux import Mux, MuxOptions
from weblet.templates import load_templates


class Item(BaseModel):
    name: str
    count: int


def _client(method: str, path: str, handler, options: MuxOptions | None = None) -> TestClient:
    mux = Mux(options)
    mux.register(method, path, handler)
    return TestClient(mux)


def test_json_response() -> None:
    async def handler(ctx: Context):
        return ctx.json(201, {"message": "héllo", "items": [1, 2]})

    response = _client("GET", "/", handler).get("/")

    assert response.status_code == 201
    assert response.headers["content-type"] == "application/json; charset=utf-8"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.text.endswith("\n")
    assert response.text == '{"message": "héllo", "items": [1, 2]}\n'


def test_json_response_from_model() -> None:
    async def handler(ctx: Context):
        return ctx.json(200, Item(name="apple", count=3))

    response = _client("GET", "/", handler).get("/")

    assert response.json() == {"name": "apple", "count": 3}


def test_decode_json_with_model() -> None:
    async def handler(ctx: Context):
        item = await ctx.decode_json(Item)
        return ctx.string(200, f"{item.name}:{item.count}")

    client = _client("POST", "/", handler)

    assert client.post("/", json={"name": "pear", "count": 2}).text == "pear:2"

    invalid = client.post("/", json={"name": "pear"})
    assert invalid.status_code == 400
    assert invalid.text == "Bad Request\n"


def test_decode_json_without_model() -> None:
    async def handler(ctx: Context):
        data = await ctx.decode_json()
        return ctx.json(200, {"echo": data})

    client = _client("POST", "/", handler)

    assert client.post("/", json=[1, "two"]).json() == {"echo": [1, "two"]}
    malformed = client.post("/", content=b"{not json", headers={"content-type": "application/json"})
    assert malformed.status_code == 400


def test_redirect() -> None:
    async def handler(ctx: Context):
        return ctx.redirect(302, "/elsewhere")

    response = _client("GET", "/", handler).get("/", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "/elsewhere"


def test_redirect_with_invalid_code_fails() -> None:
    async def handler(ctx: Context):
        return ctx.redirect(200, "/elsewhere")

    response = _client("GET", "/", handler).get("/", follow_redirects=False)

    assert response.status_code == 500


def test_text_helpers() -> None:
    async def html(ctx: Context):
        return ctx.html(200, "<p>hi</p>")

    async def raw(ctx: Context):
        return ctx.bytes(202, b"\x00\x01")

    mux = Mux()
    mux.register("GET", "/html", html)
    mux.register("GET", "/raw", raw)
    client = TestClient(mux)

    page = client.get("/html")
    assert page.headers["content-type"] == "text/html; charset=UTF-8"
    assert page.text == "<p>hi</p>"

    data = client.get("/raw")
    assert data.status_code == 202
    assert data.content == b"\x00\x01"


def test_stream() -> None:
    async def chunks():
        for part in ("a", "b", "c"):
            yield part

    async def handler(ctx: Context):
        return ctx.stream(200, chunks(), media_type="text/plain")

    assert _client("GET", "/", handler).get("/").text == "abc"


def test_set_and_get_header() -> None:
    async def handler(ctx: Context):
        ctx.set_header("X-Echo", ctx.get_header("X-Input") or "empty")
        return ctx.empty(204)

    client = _client("GET", "/", handler)

    assert client.get("/", headers={"X-Input": "value"}).headers["x-echo"] == "value"
    assert client.get("/").headers["x-echo"] == "empty"


def test_handler_headers_are_not_overwritten() -> None:
    async def handler(ctx: Context):
        ctx.set_header("Content-Type", "text/csv")
        return ctx.string(200, "a,b")

    response = _client("GET", "/", handler).get("/")

    assert response.headers["content-type"] == "text/plain; charset=UTF-8"


def test_not_found_helper() -> None:
    async def handler(ctx: Context):
        return await ctx.not_found()

    response = _client("GET", "/", handler).get("/")

    assert response.status_code == 404
    assert response.text == "Not Found\n"


def test_file_helper_stays_inside_directory(tmp_path) -> None:
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.txt").write_text("public")
    (tmp_path / "secret.txt").write_text("secret")

    async def handler(ctx: Context):
        return await ctx.file(public, ctx.get_header("X-Path"))

    client = _client("GET", "/", handler)

    assert client.get("/", headers={"X-Path": "index.txt"}).text == "public"
    assert client.get("/", headers={"X-Path": "../secret.txt"}).text == "Not Found\n"
    assert client.get("/", headers={"X-Path": "/../../secret.txt"}).status_code == 404


def test_render_template(tmp_path) -> None:
    (tmp_path / "_layout.html").write_text("<main>{% block body %}{% endblock %}</main>")
    (tmp_path / "hello.html").write_text(
        "{% extends layout %}{% block body %}Hello {{ name }}{% endblock %}"
    )
    templates = load_templates(str(tmp_path / "*.html"))

    async def handler(ctx: Context):
        return ctx.render(200, "hello.html", {"name": "<b>you</b>"})

    async def missing(ctx: Context):
        return ctx.render(200, "missing.html")

    mux = Mux(MuxOptions(templates=templates))
    mux.register("GET", "/", handler)
    mux.register("GET", "/missing", missing)
    client = TestClient(mux)

    page = client.get("/")
    assert page.headers["content-type"] == "text/html; charset=UTF-8"
    assert page.text == "<main>Hello &lt;b&gt;you&lt;/b&gt;</main>"

    assert client.get("/missing").status_code == 500


def test_state_is_shared_between_middleware_and_handler() -> None:
    def annotate(next_handler):
        async def handler(ctx: Context):
            ctx.state.user = "alice"
            return await next_handler(ctx)

        return handler

    async def handler(ctx: Context):
        return ctx.string(200, json.dumps({"user": ctx.state.user}))

    mux = Mux()
    mux.register("GET", "/", handler, annotate)

    assert TestClient(mux).get("/").json() == {"user": "alice"}
