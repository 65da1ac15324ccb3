"""
renderer.py - Page fetching behind a swappable Renderer interface.

Usage:
    renderer = PlaywrightRenderer()          # or HttpRenderer()
    with renderer.session() as fetcher:      # one session per worker thread
        result = fetcher.fetch("https://example.com")
        result.initial_html, result.rendered_html
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import ContextManager, Iterator, Mapping, Protocol
from urllib.parse import urljoin

import requests

import config
from net_guardrails import (
    DEFAULT_HEADERS,
    DEFAULT_TIMEOUT,
    MAX_HTML_BYTES,
    MAX_REDIRECTS,
    read_limited_text,
    validate_url,
)
from web_vitals import measure_vitals

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
# Response headers kept for the technical checks, lowercased.
RECORDED_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-frame-options",
    "x-content-type-options",
    "referrer-policy",
    "content-encoding",
    "cache-control",
    "etag",
)


@dataclass(frozen=True)
class RenderResult:
    url: str
    final_url: str
    status_code: int | None
    initial_html: str = ""
    rendered_html: str = ""
    content_type: str = ""
    load_time_ms: int | None = None
    error: str | None = None
    timed_out: bool = False
    vitals: dict | None = None
    headers: dict[str, str] | None = None
    redirect_count: int = 0

    @property
    def is_html(self) -> bool:
        if not self.content_type:
            return True
        return any(t in self.content_type.lower() for t in HTML_CONTENT_TYPES)


def recorded_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    lowered = {str(k).lower(): str(v) for k, v in headers.items()}
    return {name: lowered[name] for name in RECORDED_HEADERS if name in lowered}


class Fetcher(Protocol):
    def fetch(self, url: str) -> RenderResult: ...


class Renderer(Protocol):
    def session(self) -> ContextManager[Fetcher]: ...


class HttpFetcher:
    """Plain HTTP GET; the served document is both the initial and the rendered HTML."""

    def __init__(self, session: requests.Session, timeout: float = DEFAULT_TIMEOUT,
                 max_bytes: int | None = MAX_HTML_BYTES):
        self.session = session
        self.timeout = timeout
        self.max_bytes = max_bytes

    def _failure(self, url: str, current_url: str, error: str, status: int | None = None,
                 started: float | None = None) -> RenderResult:
        elapsed = int((time.monotonic() - started) * 1000) if started is not None else None
        return RenderResult(url=url, final_url=current_url, status_code=status, error=error, load_time_ms=elapsed)

    def fetch(self, url: str) -> RenderResult:
        started = time.monotonic()
        try:
            validate_url(url)
        except ValueError:
            return self._failure(url, url, "invalid_url")

        current_url = url
        redirects = 0
        while True:
            try:
                resp = self.session.get(
                    current_url,
                    headers=DEFAULT_HEADERS,
                    timeout=self.timeout,
                    stream=True,
                    allow_redirects=False,
                )
            except requests.Timeout:
                return self._failure(url, current_url, "timeout", started=started)
            except requests.TooManyRedirects:
                return self._failure(url, current_url, "too_many_redirects", started=started)
            except requests.RequestException:
                return self._failure(url, current_url, "fetch_error", started=started)

            status = resp.status_code
            if status in REDIRECT_STATUSES:
                location = (resp.headers or {}).get("Location")
                resp.close()
                if not location:
                    return self._failure(url, current_url, "fetch_error", status, started)
                redirects += 1
                if redirects > MAX_REDIRECTS:
                    return self._failure(url, current_url, "too_many_redirects", started=started)
                try:
                    next_url = urljoin(current_url, location)
                except ValueError:
                    return self._failure(url, current_url, "invalid_url", started=started)
                try:
                    validate_url(next_url)
                except ValueError:
                    return self._failure(url, next_url, "invalid_url", started=started)
                current_url = next_url
                continue

            content_type = (resp.headers or {}).get("Content-Type", "") or ""
            headers = recorded_headers(resp.headers)
            try:
                text, too_large = read_limited_text(resp, self.max_bytes)
            except requests.RequestException:
                return self._failure(url, current_url, "fetch_error", status, started)
            finally:
                resp.close()
            elapsed = int((time.monotonic() - started) * 1000)
            if too_large:
                return RenderResult(url=url, final_url=resp.url or current_url, status_code=status,
                                    content_type=content_type, load_time_ms=elapsed, error="too_large",
                                    headers=headers, redirect_count=redirects)
            return RenderResult(
                url=url,
                final_url=resp.url or current_url,
                status_code=status,
                initial_html=text,
                rendered_html=text,
                content_type=content_type,
                load_time_ms=elapsed,
                headers=headers,
                redirect_count=redirects,
            )


class HttpRenderer:
    """Lightweight fallback without script execution."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    @contextmanager
    def session(self) -> Iterator[HttpFetcher]:
        http = requests.Session()
        http.max_redirects = MAX_REDIRECTS
        http.trust_env = False
        try:
            yield HttpFetcher(http, timeout=self.timeout)
        finally:
            http.close()


class PlaywrightFetcher:
    def __init__(self, browser, http: HttpFetcher, settle_ms: int, timeout_ms: int, measure: bool):
        self.browser = browser
        self.http = http
        self.settle_ms = settle_ms
        self.timeout_ms = timeout_ms
        self.measure = measure

    def fetch(self, url: str) -> RenderResult:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeout

        # The server document is what non-rendering readers get.
        initial = self.http.fetch(url)
        if initial.error or not initial.is_html or not 200 <= (initial.status_code or 0) < 300:
            return initial

        context = self.browser.new_context(
            user_agent=DEFAULT_HEADERS["User-Agent"],
            viewport={"width": 1920, "height": 1080},
        )
        timed_out = False
        try:
            page = context.new_page()
            started = time.monotonic()
            response = None
            try:
                response = page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
            except PlaywrightTimeout:
                timed_out = True
                logger.warning("Render timeout for %s, using partial DOM.", url)
            # Late hydration frameworks keep mutating the DOM after network idle.
            page.wait_for_timeout(self.settle_ms)
            rendered = page.content()
            elapsed = int((time.monotonic() - started) * 1000)
            vitals = measure_vitals(page) if self.measure else None
            status = response.status if response is not None else initial.status_code
            return RenderResult(
                url=url,
                final_url=page.url or initial.final_url,
                status_code=status,
                initial_html=initial.initial_html,
                rendered_html=rendered,
                content_type=initial.content_type,
                load_time_ms=elapsed,
                timed_out=timed_out,
                vitals=vitals,
                headers=initial.headers,
                redirect_count=initial.redirect_count,
            )
        except PlaywrightError as exc:
            logger.warning("Rendering failed for %s (%s), using served HTML.", url, exc)
            return initial
        finally:
            context.close()


class PlaywrightRenderer:
    """
    Headless Chromium renderer. Playwright's sync API is bound to the thread
    that started it, so every session() owns its own browser.
    """

    def __init__(self, settle_ms: int = config.RENDER_SETTLE_MS, timeout_ms: int = config.RENDER_TIMEOUT_MS,
                 measure_vitals: bool = True):
        self.settle_ms = settle_ms
        self.timeout_ms = timeout_ms
        self.measure_vitals = measure_vitals
        self.http = HttpRenderer()

    @contextmanager
    def session(self) -> Iterator[PlaywrightFetcher]:
        from playwright.sync_api import sync_playwright

        with self.http.session() as http, sync_playwright() as p:
            browser = p.chromium.launch(headless=True, args=CHROMIUM_ARGS)
            try:
                yield PlaywrightFetcher(browser, http, self.settle_ms, self.timeout_ms, self.measure_vitals)
            finally:
                browser.close()


def build_renderer(name: str | None = None):
    name = (name or config.RENDERER).lower()
    if name == "http":
        return HttpRenderer()
    if name == "playwright":
        return PlaywrightRenderer()
    raise ValueError(f"Unknown renderer: {name}")
