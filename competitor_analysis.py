"""
competitor_analysis.py - Small crawls of competitor sites and keyword gaps.

crawl_competitors() is independent of the main crawl and can start right
away; compare_keywords() needs the audited site's keywords and runs after.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from crawler import Crawler
from errors import AddOnFailure, AuditError
from keyword_processor import keyword_gaps, rank_site_keywords
from models import CompetitorAnalysis, CompetitorSite
from renderer import Renderer

logger = logging.getLogger(__name__)

COMPETITOR_PAGE_CAP = 5
COMPETITOR_MAX_DEPTH = 2
COMPETITOR_WORKERS = 2
COMPETITOR_TIMEOUT = 120.0
DEFAULT_KEYWORD_LIMIT = 20


def crawl_competitor(
    url: str,
    renderer: Renderer,
    file_renderer: Renderer | None = None,
    page_cap: int = COMPETITOR_PAGE_CAP,
    keyword_limit: int = DEFAULT_KEYWORD_LIMIT,
) -> CompetitorSite:
    crawler = Crawler(
        renderer,
        max_pages=page_cap,
        max_depth=COMPETITOR_MAX_DEPTH,
        workers=COMPETITOR_WORKERS,
        timeout=COMPETITOR_TIMEOUT,
        file_renderer=file_renderer,
    )
    try:
        result = crawler.crawl(url)
    except AuditError as exc:
        logger.warning("Competitor crawl failed for %s: %s", url, exc)
        return CompetitorSite(url=url, pages_crawled=0, error=exc.reason)

    ok_pages = [p for p in result.pages if p.ok]
    if not ok_pages:
        logger.warning("Competitor %s returned no usable pages", url)
        return CompetitorSite(url=url, pages_crawled=len(result.pages), error="no_pages")
    keywords = rank_site_keywords((p.keywords for p in ok_pages), keyword_limit)
    logger.info("Competitor %s: %d pages, %d keywords", url, len(ok_pages), len(keywords))
    return CompetitorSite(url=url, pages_crawled=len(ok_pages), keywords=tuple(keywords))


def crawl_competitors(
    urls: Iterable[str],
    renderer: Renderer,
    file_renderer: Renderer | None = None,
    max_competitors: int | None = None,
    page_cap: int = COMPETITOR_PAGE_CAP,
    keyword_limit: int = DEFAULT_KEYWORD_LIMIT,
) -> list[CompetitorSite]:
    targets = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
    if max_competitors is not None and len(targets) > max_competitors:
        logger.info("Limiting competitor analysis to %d of %d URLs", max_competitors, len(targets))
        targets = targets[:max_competitors]
    return [crawl_competitor(u, renderer, file_renderer, page_cap, keyword_limit) for u in targets]


def compare_keywords(own_keywords: Iterable[str], sites: Sequence[CompetitorSite]) -> CompetitorAnalysis:
    """Raises AddOnFailure when no competitor produced keywords."""
    usable = [s for s in sites if s.error is None]
    if not usable:
        raise AddOnFailure("competitor_analysis", "No competitor site could be crawled")

    competitor_keywords = list(dict.fromkeys(kw for site in usable for kw in site.keywords))
    gaps, shared, unique = keyword_gaps(own_keywords, competitor_keywords)
    return CompetitorAnalysis(
        competitor_urls=tuple(s.url for s in sites),
        competitor_keywords=tuple(competitor_keywords),
        keyword_gaps=tuple(gaps),
        shared_keywords=tuple(shared),
        unique_keywords=tuple(unique),
        sites=tuple(sites),
    )


def analyze_competitors(
    urls: Iterable[str],
    own_keywords: Iterable[str],
    renderer: Renderer,
    file_renderer: Renderer | None = None,
    max_competitors: int | None = None,
    page_cap: int = COMPETITOR_PAGE_CAP,
) -> CompetitorAnalysis:
    sites = crawl_competitors(urls, renderer, file_renderer, max_competitors, page_cap)
    return compare_keywords(own_keywords, sites)
