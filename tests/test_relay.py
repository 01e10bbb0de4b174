import pytest
import requests

from card_printer.relay import create_app

from conftest import FakeResponse


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _client(session):
    app = create_app(session=session)
    app.config["TESTING"] = True
    return app.test_client()


def test_missing_url_is_bad_request():
    resp = _client(FakeSession()).get("/img")
    assert resp.status_code == 400
    assert resp.data == b"Missing url"


def test_streams_upstream_bytes_with_content_type():
    upstream = FakeResponse(200, b"\x89PNG" + b"x" * 200_000, {"Content-Type": "image/png"})
    session = FakeSession(response=upstream)

    resp = _client(session).get("/img", query_string={"url": "https://cdn.example.com/a b.png?x=1"})

    assert resp.status_code == 200
    assert resp.data == upstream.content
    assert resp.headers["Content-Type"] == "image/png"
    assert resp.headers["Cache-Control"] == "public, max-age=3600"
    assert session.calls[0][0] == "https://cdn.example.com/a b.png?x=1"
    assert session.calls[0][1]["allow_redirects"] is True


def test_missing_content_type_defaults_to_octet_stream():
    resp = _client(FakeSession(response=FakeResponse(200, b"data"))).get("/img?url=https://x/y")
    assert resp.headers["Content-Type"] == "application/octet-stream"


@pytest.mark.parametrize("status", [403, 404, 502])
def test_upstream_status_is_propagated(status):
    upstream = FakeResponse(status)
    resp = _client(FakeSession(response=upstream)).get("/img?url=https://x/y")
    assert resp.status_code == status
    assert upstream.closed


def test_request_failure_is_proxy_error():
    session = FakeSession(error=requests.exceptions.ConnectionError("down"))
    resp = _client(session).get("/img?url=https://x/y")
    assert resp.status_code == 500
    assert resp.data == b"Proxy error"
