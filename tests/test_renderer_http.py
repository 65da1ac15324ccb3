import pytest
import requests

import renderer
from net_guardrails import MAX_REDIRECTS
from renderer import HttpFetcher, HttpRenderer, PlaywrightRenderer, RenderResult, build_renderer


class _Resp:
    def __init__(self, status_code, url, headers=None, body=b""):
        self.status_code = status_code
        self.url = url
        self.headers = headers or {}
        self._body = body
        self.encoding = "utf-8"
        self.closed = False

    def iter_content(self, chunk_size=16384):
        yield self._body

    def close(self):
        self.closed = True


class _Session:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def get(self, url, headers=None, timeout=None, stream=None, allow_redirects=None):
        self.requests.append(url)
        if not self._responses:
            return _Resp(200, url, {"Content-Type": "text/html"}, b"ok")
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_fetch_calls_validate_url(monkeypatch):
    called = {"count": 0}

    def _validate(u):
        called["count"] += 1

    monkeypatch.setattr(renderer, "validate_url", _validate)
    session = _Session([_Resp(200, "https://example.com/", {"Content-Type": "text/html"}, b"<html>ok</html>")])

    result = HttpFetcher(session).fetch("https://example.com/")
    assert result.status_code == 200
    assert result.error is None
    assert called["count"] >= 1
    assert result.final_url == "https://example.com/"
    assert result.initial_html == result.rendered_html == "<html>ok</html>"
    assert result.is_html


def test_fetch_invalid_url_rejected(monkeypatch):
    def _validate(_):
        raise ValueError("bad")

    monkeypatch.setattr(renderer, "validate_url", _validate)
    session = _Session([_Resp(200, "http://127.0.0.1", {}, b"no")])

    result = HttpFetcher(session).fetch("http://127.0.0.1")
    assert result.status_code is None
    assert result.error == "invalid_url"
    assert session.requests == []


def test_fetch_redirect_limit(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    responses = []
    for i in range(MAX_REDIRECTS + 1):
        responses.append(_Resp(302, f"https://example.com/r{i}", {"Location": f"/r{i+1}"}))
    session = _Session(responses)

    result = HttpFetcher(session).fetch("https://example.com/r0")
    assert result.status_code is None
    assert result.error == "too_many_redirects"


def test_every_redirect_hop_is_validated(monkeypatch):
    seen = []

    def _validate(u):
        seen.append(u)
        if "internal" in u:
            raise ValueError("private")

    monkeypatch.setattr(renderer, "validate_url", _validate)
    session = _Session([_Resp(301, "https://example.com/", {"Location": "http://internal.local/admin"})])

    result = HttpFetcher(session).fetch("https://example.com/")
    assert seen == ["https://example.com/", "http://internal.local/admin"]
    assert result.error == "invalid_url"
    assert len(session.requests) == 1


def test_redirect_is_followed_to_final_url(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    first = _Resp(301, "https://example.com/old", {"Location": "/new"})
    session = _Session([first, _Resp(200, "https://example.com/new", {"Content-Type": "text/html"}, b"<p>new</p>")])

    result = HttpFetcher(session).fetch("https://example.com/old")
    assert result.url == "https://example.com/old"
    assert result.final_url == "https://example.com/new"
    assert session.requests == ["https://example.com/old", "https://example.com/new"]
    assert first.closed


def test_timeout_and_network_errors(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)

    result = HttpFetcher(_Session([requests.Timeout()])).fetch("https://example.com/slow")
    assert result.error == "timeout"
    assert result.status_code is None

    result = HttpFetcher(_Session([requests.ConnectionError()])).fetch("https://example.com/down")
    assert result.error == "fetch_error"


def test_oversized_body(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    body = _Resp(200, "https://example.com/big", {"Content-Type": "text/html"}, b"x" * 64)
    session = _Session([body])

    result = HttpFetcher(session, max_bytes=16).fetch("https://example.com/big")
    assert result.error == "too_large"
    assert result.status_code == 200
    assert body.closed


def test_error_status_is_returned_not_raised(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    session = _Session([_Resp(404, "https://example.com/gone", {"Content-Type": "text/html"}, b"missing")])

    result = HttpFetcher(session).fetch("https://example.com/gone")
    assert result.status_code == 404
    assert result.error is None


def test_is_html_by_content_type():
    assert RenderResult("u", "u", 200, content_type="text/html; charset=utf-8").is_html
    assert RenderResult("u", "u", 200).is_html
    assert not RenderResult("u", "u", 200, content_type="application/pdf").is_html


def test_build_renderer():
    assert isinstance(build_renderer("http"), HttpRenderer)
    assert isinstance(build_renderer("Playwright"), PlaywrightRenderer)
    with pytest.raises(ValueError):
        build_renderer("lynx")


class _BrokenBody(_Resp):
    def iter_content(self, chunk_size=16384):
        raise requests.ConnectionError("reset by peer")


def test_body_read_error_closes_response(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    body = _BrokenBody(200, "https://example.com/reset", {"Content-Type": "text/html"})

    result = HttpFetcher(_Session([body])).fetch("https://example.com/reset")

    assert result.error == "fetch_error"
    assert result.status_code == 200
    assert body.closed


def test_malformed_location_header(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    session = _Session([_Resp(302, "https://example.com/go", {"Location": "http://[broken/next"})])

    result = HttpFetcher(session).fetch("https://example.com/go")

    assert result.error == "invalid_url"
    assert result.final_url == "https://example.com/go"
    assert session.requests == ["https://example.com/go"]


def test_security_and_caching_headers_are_recorded(monkeypatch):
    monkeypatch.setattr(renderer, "validate_url", lambda _u: None)
    headers = {
        "Content-Type": "text/html",
        "Strict-Transport-Security": "max-age=63072000",
        "Content-Encoding": "br",
        "Cache-Control": "public, max-age=600",
        "Set-Cookie": "session=abc",
    }
    session = _Session([
        _Resp(301, "https://example.com/old", {"Location": "/mid"}),
        _Resp(302, "https://example.com/mid", {"Location": "/new"}),
        _Resp(200, "https://example.com/new", headers, b"<p>new</p>"),
    ])

    result = HttpFetcher(session).fetch("https://example.com/old")

    assert result.headers == {
        "strict-transport-security": "max-age=63072000",
        "content-encoding": "br",
        "cache-control": "public, max-age=600",
    }
    assert result.redirect_count == 2


def test_http_renderer_does_not_load_playwright():
    assert not hasattr(renderer, "sync_playwright")
    assert not hasattr(renderer, "PlaywrightError")
