"""
crawler.py - Bounded concurrent crawl.

Workers pull CrawlTargets from a FIFO frontier shared behind one condition
variable; the frontier also owns the visited set and the fetch budget, so no
URL is fetched twice and max_pages is never exceeded. Pages are analyzed in
the worker right after their fetch. Requests to one host are spaced by the
configured delay or the robots.txt Crawl-delay, whichever is longer.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

from defusedxml import ElementTree as ET

import config
import page_analyzer
from errors import FatalInputError
from models import CrawlEdge, CrawlTarget, PageRecord, SiteFiles
from net_guardrails import RobotsRules, ignore_robots, parse_robots, robots_disallows
from performance_metrics import RateLimiter
from renderer import HttpRenderer, Renderer
from url_normalizer import host_key, normalize_url, site_root

logger = logging.getLogger(__name__)

STOP_FRONTIER_EXHAUSTED = "frontier_exhausted"
STOP_MAX_PAGES = "max_pages"
STOP_TIMEOUT = "timeout"
MISSING_STATUSES = (404, 410)
MAX_SITEMAP_PAGE_URLS = 5000


@dataclass(frozen=True)
class CrawlResult:
    root_url: str
    pages: tuple[PageRecord, ...]
    edges: tuple[CrawlEdge, ...]
    site_files: SiteFiles
    stop_reason: str
    duration: float
    disallowed_paths: tuple[str, ...] = ()
    # Distinct same-site links robots.txt kept out of the frontier.
    pages_skipped: int = 0


class Frontier:
    def __init__(self, max_pages: int, max_depth: int, deadline: float):
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.deadline = deadline
        self.stop_reason: str | None = None
        self._cond = threading.Condition()
        self._queue: deque[CrawlTarget] = deque()
        self._seen: set[str] = set()
        self._recorded: set[str] = set()
        self._started = 0
        self._in_flight = 0
        self._order = 0

    @property
    def fetch_count(self) -> int:
        with self._cond:
            return self._started

    def add(self, url: str, depth: int, discovered_from: str | None = None) -> bool:
        if depth > self.max_depth:
            return False
        with self._cond:
            if url in self._seen:
                return False
            self._seen.add(url)
            self._queue.append(CrawlTarget(url, depth, discovered_from, self._order))
            self._order += 1
            self._cond.notify()
            return True

    def claim(self, url: str) -> bool:
        """Reserve url as a recorded page; False when another fetch already produced it."""
        with self._cond:
            if url in self._recorded:
                return False
            self._recorded.add(url)
            self._seen.add(url)
            return True

    def _stop(self, reason: str) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
        self._cond.notify_all()

    def next(self) -> CrawlTarget | None:
        with self._cond:
            while True:
                remaining = self.deadline - time.monotonic()
                if remaining <= 0:
                    self._stop(STOP_TIMEOUT)
                    return None
                if self._started >= self.max_pages:
                    self._stop(STOP_MAX_PAGES)
                    return None
                if self._queue:
                    target = self._queue.popleft()
                    if target.url in self._recorded:
                        # Already reached through another page's redirect.
                        continue
                    self._started += 1
                    self._in_flight += 1
                    return target
                if self._in_flight == 0:
                    self._stop(STOP_FRONTIER_EXHAUSTED)
                    return None
                self._cond.wait(timeout=remaining)

    def done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()


class HostThrottle:
    """Keeps requests to one host at least min_interval seconds apart across workers."""

    def __init__(self, min_interval: float):
        self.min_interval = max(0.0, min_interval)
        self._lock = threading.Lock()
        self._limiters: dict[str, RateLimiter] = {}

    def wait(self, url: str) -> None:
        if self.min_interval <= 0:
            return
        host = host_key(urlparse(url).netloc)
        with self._lock:
            limiter = self._limiters.setdefault(host, RateLimiter(self.min_interval))
        limiter.wait()


def _parse_sitemap_xml(body: str) -> tuple[list[str], str]:
    root = ET.fromstring(body)
    kind = "sitemapindex" if "sitemapindex" in root.tag.lower() else "urlset"
    urls = [elem.text.strip() for elem in root.iter() if elem.tag.lower().endswith("loc") and elem.text]
    return urls, kind


def probe_site_files(fetcher, root: str) -> tuple[SiteFiles, RobotsRules]:
    """Check robots.txt and the sitemap; returns the presence flags and parsed robots rules."""
    robots_url = urljoin(root + "/", "robots.txt")
    robots = fetcher.fetch(robots_url)
    robots_status = robots.status_code
    robots_exists = robots_status is not None and robots_status not in MISSING_STATUSES
    robots_reachable = robots_status == 200 and not robots.error
    rules = parse_robots(robots.initial_html) if robots_reachable else RobotsRules()

    candidates = rules.sitemaps or [urljoin(root + "/", "sitemap.xml"), urljoin(root + "/", "sitemap_index.xml")]
    sitemap_exists = sitemap_reachable = False
    sitemap_url = None
    url_count = 0
    page_urls: tuple[str, ...] = ()
    for candidate in candidates:
        result = fetcher.fetch(candidate)
        if result.status_code is None or result.status_code in MISSING_STATUSES:
            continue
        sitemap_exists = True
        sitemap_url = candidate
        if result.status_code == 200 and not result.error:
            try:
                urls, kind = _parse_sitemap_xml(result.initial_html)
            except (ET.ParseError, ValueError):
                logger.info("Sitemap at %s is not valid XML", candidate)
            else:
                sitemap_reachable = True
                url_count = len(urls)
                if kind == "urlset":
                    normalized = (normalize_url(u) for u in urls[:MAX_SITEMAP_PAGE_URLS])
                    page_urls = tuple(dict.fromkeys(u for u in normalized if u))
        break

    files = SiteFiles(
        robots_txt_exists=robots_exists,
        robots_txt_reachable=robots_reachable,
        sitemap_exists=sitemap_exists,
        sitemap_reachable=sitemap_reachable,
        sitemap_url=sitemap_url,
        sitemap_url_count=url_count,
        sitemap_page_urls=page_urls,
    )
    return files, rules


class Crawler:
    def __init__(
        self,
        renderer: Renderer,
        max_pages: int,
        max_depth: int,
        workers: int = config.CRAWL_WORKERS,
        timeout: float = config.CRAWL_TIMEOUT,
        file_renderer: Renderer | None = None,
        recommend_alt: bool = False,
        respect_robots: bool = True,
        crawl_delay: float = config.CRAWL_DELAY,
    ):
        self.renderer = renderer
        self.file_renderer = file_renderer or HttpRenderer()
        self.max_pages = max(0, int(max_pages))
        self.max_depth = max(0, int(max_depth))
        self.workers = max(1, int(workers))
        self.timeout = float(timeout)
        self.recommend_alt = recommend_alt
        self.respect_robots = respect_robots and not ignore_robots()
        self.crawl_delay = max(0.0, float(crawl_delay))
        self._throttle = HostThrottle(self.crawl_delay)
        self._lock = threading.Lock()
        self._pages: list[tuple[int, PageRecord]] = []
        self._edges: list[CrawlEdge] = []
        self._blocked: set[str] = set()
        self._rules = RobotsRules()
        self._root = ""
        self._frontier: Frontier | None = None

    def _allowed(self, url: str) -> bool:
        if not self.respect_robots:
            return True
        disallowed, rule = robots_disallows(url, self._rules)
        if disallowed:
            logger.debug("robots.txt rule %s blocks %s", rule, url)
        return not disallowed

    def _effective_delay(self) -> float:
        delay = self.crawl_delay
        robots_delay = self._rules.crawl_delay() if self.respect_robots else None
        if robots_delay:
            delay = max(delay, min(robots_delay, config.MAX_CRAWL_DELAY))
        if delay > 0:
            logger.info("Spacing requests to %s by %.1fs", self._root, delay)
        return delay

    def _record_failure(self, target: CrawlTarget, error: str) -> None:
        self._frontier.claim(target.url)
        with self._lock:
            if any(record.url == target.url for _, record in self._pages):
                return
            self._pages.append((target.order, page_analyzer.failed_page(target.url, None, error)))

    def _process(self, fetcher, target: CrawlTarget) -> None:
        frontier = self._frontier
        if not self._allowed(target.url):
            # Only the start URL gets here; disallowed links never enter the frontier.
            self._record_failure(target, "robots_disallowed")
            return
        self._throttle.wait(target.url)
        result = fetcher.fetch(target.url)
        if not result.error and not result.is_html:
            logger.debug("Skipping non-HTML response at %s (%s)", target.url, result.content_type)
            return

        final = normalize_url(result.final_url or "") or target.url
        page_url = final if result.error is None else target.url
        if not frontier.claim(page_url):
            logger.debug("%s redirected to already crawled %s", target.url, page_url)
            return
        if page_url != target.url:
            frontier.claim(target.url)

        record = page_analyzer.analyze(
            page_url,
            result.initial_html,
            result.rendered_html,
            result.status_code,
            root_url=self._root,
            final_url=result.final_url,
            error=result.error,
            load_time_ms=result.load_time_ms,
            vitals=result.vitals,
            recommend_alt=self.recommend_alt,
            headers=result.headers,
            redirect_count=result.redirect_count,
            timed_out=result.timed_out,
        )
        if record.broken:
            logger.info("Fetch failed for %s (%s)", target.url, record.error)

        child_depth = target.depth + 1
        new_edges = []
        blocked = []
        if child_depth <= self.max_depth:
            for link in record.internal_links:
                if not self._allowed(link):
                    blocked.append(link)
                    continue
                new_edges.append(CrawlEdge(page_url, link, child_depth))
                frontier.add(link, child_depth, page_url)
        with self._lock:
            self._pages.append((target.order, record))
            self._edges.extend(new_edges)
            self._blocked.update(blocked)

    def _worker(self) -> None:
        frontier = self._frontier
        with self.renderer.session() as fetcher:
            while True:
                target = frontier.next()
                if target is None:
                    return
                try:
                    self._process(fetcher, target)
                except Exception as exc:
                    logger.error("Could not process %s: %s", target.url, exc, exc_info=True)
                    self._record_failure(target, "analysis_error")
                finally:
                    frontier.done()

    def crawl(self, start_url: str) -> CrawlResult:
        start = normalize_url(start_url)
        if not start:
            raise FatalInputError("invalid_url", start_url)
        self._root = site_root(start)
        started = time.monotonic()

        with self.file_renderer.session() as fetcher:
            site_files, self._rules = probe_site_files(fetcher, self._root)
        self._throttle = HostThrottle(self._effective_delay())

        self._frontier = Frontier(self.max_pages, self.max_depth, started + self.timeout)
        if self.max_pages > 0:
            self._frontier.add(start, 0, None)

        logger.info("Crawling %s (max pages: %d, max depth: %d, workers: %d)",
                    start, self.max_pages, self.max_depth, self.workers)
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="crawl") as pool:
            futures = [pool.submit(self._worker) for _ in range(self.workers)]
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    logger.error("Crawl worker stopped: %s", exc)

        pages = tuple(record for _, record in sorted(self._pages, key=lambda item: item[0]))
        duration = time.monotonic() - started
        stop_reason = self._frontier.stop_reason or STOP_FRONTIER_EXHAUSTED
        logger.info("Crawl finished: %d pages in %.1fs (%s)", len(pages), duration, stop_reason)
        return CrawlResult(
            root_url=self._root,
            pages=pages,
            edges=tuple(self._edges),
            site_files=site_files,
            stop_reason=stop_reason,
            duration=duration,
            disallowed_paths=self._disallowed_paths(),
            pages_skipped=len(self._blocked),
        )

    def _disallowed_paths(self) -> tuple[str, ...]:
        if not self.respect_robots:
            return ()
        paths = (path for directive, path in self._rules.rules_for() if directive == "disallow" and path)
        return tuple(dict.fromkeys(paths))


def crawl(start_url: str, max_pages: int, max_depth: int, renderer: Renderer, **kwargs) -> CrawlResult:
    return Crawler(renderer, max_pages, max_depth, **kwargs).crawl(start_url)
