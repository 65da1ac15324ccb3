import threading
from contextlib import contextmanager
from dataclasses import dataclass

import pytest

from renderer import RenderResult


@dataclass
class FakePage:
    status: int = 200
    html: str = ""
    rendered: str | None = None
    error: str | None = None
    final_url: str | None = None
    content_type: str = "text/html; charset=utf-8"


class FakeSite:
    """Scripted site served through the Renderer interface; unknown URLs are 404s."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.fetched = []
        self.sessions = 0
        self._lock = threading.Lock()

    @contextmanager
    def session(self):
        with self._lock:
            self.sessions += 1
        yield self

    def fetch(self, url):
        with self._lock:
            self.fetched.append(url)
        page = self.pages.get(url)
        if page is None:
            return RenderResult(url=url, final_url=url, status_code=404, initial_html="not found",
                                rendered_html="not found", content_type="text/html")
        if page.error:
            return RenderResult(url=url, final_url=url, status_code=None, error=page.error)
        rendered = page.html if page.rendered is None else page.rendered
        return RenderResult(
            url=url,
            final_url=page.final_url or url,
            status_code=page.status,
            initial_html=page.html,
            rendered_html=rendered,
            content_type=page.content_type,
            load_time_ms=12,
        )


def page_html(title="Garden tools and planting guides for home", links=(), words=320, h1=1, h2=0,
              description="Garden tools, planting advice and seasonal care guides for home gardeners who want "
                          "healthy soil and a tidy yard. Fresh tips every single week.", lang="en", extra=""):
    body_words = " ".join(["gardening"] * 10 + ["soil", "compost", "mulch", "pruning"] * ((words - 10) // 4))
    anchors = "".join(f'<a href="{href}">link {i}</a>' for i, href in enumerate(links))
    headings = "".join(f"<h1>Heading {i}</h1>" for i in range(h1)) + "".join(f"<h2>Sub {i}</h2>" for i in range(h2))
    lang_attr = f' lang="{lang}"' if lang else ""
    return (
        f"<html{lang_attr}><head><title>{title}</title>"
        f'<meta name="description" content="{description}">'
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"{extra}</head><body>{headings}<p>{body_words}</p>{anchors}</body></html>"
    )


@pytest.fixture
def make_site():
    def _make(pages):
        return FakeSite({url: page if isinstance(page, FakePage) else FakePage(html=page)
                         for url, page in pages.items()})
    return _make
