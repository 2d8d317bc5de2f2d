from __future__ import annotations

from weblet.errors import ErrorKind, WebError, error_response, status_text


def test_error_kinds() -> None:
    client = WebError.client(404, "no such user")
    server = WebError.server("lookup failed")
    try:
        raise KeyError("user")
    except KeyError as exc:
        panic = WebError.panic(exc)

    assert (client.kind, client.status) == (ErrorKind.CLIENT, 404)
    assert (server.kind, server.status) == (ErrorKind.SERVER, 500)
    assert (panic.kind, panic.status) == (ErrorKind.PANIC, 500)
    assert str(client) == "Error: 'no such user'"
    assert str(server) == "Server: lookup failed"
    assert "KeyError" in str(panic)


def test_panic_keeps_the_stack() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        error = WebError.panic(exc)

    assert error.cause is not None
    assert "Traceback" in error.stack
    assert "RuntimeError: boom" in error.stack
    assert WebError.client(400, "bad").stack == ""


def test_status_text() -> None:
    assert status_text(404) == "Not Found"
    assert status_text(500) == "Internal Server Error"
    assert status_text(999) == ""


def test_error_response() -> None:
    response = error_response(409, "Conflict")

    assert response.status_code == 409
    assert response.body == b"Conflict\n"
    assert response.headers["content-type"] == "text/plain; charset=utf-8"
    assert response.headers["x-content-type-options"] == "nosniff"
