"""
crawl_diagnostics.py - Explain how well the crawl went.

Usage:
    diagnostics = analyze_crawl(pages, start_url, duration_s=12.5)
    status_message(diagnostics)

Reports the crawl status, the site platform and crawl-level problems
(every page failing, parked domains, robots.txt blocks, script-only pages,
redirect loops) with recommendations for getting a better crawl next time.
"""

from __future__ import annotations

import re
from typing import Sequence

from models import CrawlDiagnostics, CrawlIssue, CrawlMetrics, PageRecord

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"
PLATFORM_CUSTOM = "custom"

# Checked in order; the first platform with a matching signature wins.
PLATFORM_SIGNATURES = {
    "wix": [r"wix\.com", r"wixstatic\.com", r"wixpress\.com"],
    "wordpress": [r"wp-content", r"wp-includes", r"wp-admin", r"generator[^>]*wordpress"],
    "squarespace": [r"squarespace\.com", r"squarespace-cdn"],
    "shopify": [r"myshopify\.com", r"cdn\.shopify\.com", r"shopifycdn"],
}
HOSTED_PLATFORMS = (
    ("wixsite.com", "wix"),
    ("wix.com", "wix"),
    ("squarespace.com", "squarespace"),
    ("myshopify.com", "shopify"),
)
PARKING_PHRASES = (
    "domain for sale",
    "this domain is for sale",
    "parked domain",
    "coming soon",
    "under construction",
    "site not found",
    "default web site page",
)

MIN_PAGES_FOR_SUCCESS = 5
MAX_FAILED_SHARE = 0.5
MIN_PAGES_FOR_METRICS = 5
LOW_CONTENT_WORDS = 100
LOW_CONTENT_SHARE = 0.7
POOR_PAGES_PER_SECOND = 0.1
DEGRADED_PAGES_PER_SECOND = 0.5


def detect_platform(html: str) -> str | None:
    """Platform whose signature appears in the page source, or None."""
    content = (html or "").lower()
    for platform, patterns in PLATFORM_SIGNATURES.items():
        if any(re.search(p, content) for p in patterns):
            return platform
    return None


def site_platform(pages: Sequence[PageRecord], start_url: str) -> str:
    url = (start_url or "").lower()
    for marker, platform in HOSTED_PLATFORMS:
        if marker in url:
            return platform
    for page in pages:
        if page.platform:
            return page.platform
    return PLATFORM_CUSTOM


def _is_parked(pages: Sequence[PageRecord]) -> bool:
    for page in pages:
        text = " ".join((page.title, *page.h1_texts)).lower()
        if any(phrase in text for phrase in PARKING_PHRASES):
            return True
    return False


def _crawl_issues(pages: Sequence[PageRecord], ok_pages: Sequence[PageRecord]) -> list[CrawlIssue]:
    issues: list[CrawlIssue] = []
    if pages and not ok_pages:
        issues.append(CrawlIssue(
            "all_errors", "critical",
            "All pages returned errors. The site may be down or blocking our crawler.",
            tuple(p.url for p in pages),
        ))
    if _is_parked(pages):
        issues.append(CrawlIssue(
            "parking_page", "critical",
            "Site appears to be a parking page or under construction. No real content detected.",
        ))
    blocked = tuple(p.url for p in pages if p.error == "robots_disallowed")
    if blocked:
        issues.append(CrawlIssue(
            "robots_blocked", "warning",
            "robots.txt blocks our crawler from the start page. Check the robots.txt configuration.",
            blocked,
        ))
    low_content = [p for p in ok_pages if p.word_count < LOW_CONTENT_WORDS]
    if ok_pages and len(low_content) / len(ok_pages) > LOW_CONTENT_SHARE:
        issues.append(CrawlIssue(
            "js_required", "warning",
            "Site appears to be JavaScript-heavy. Some content may not be fully rendered.",
            tuple(p.url for p in low_content),
        ))
    loops = tuple(p.url for p in pages if p.error == "too_many_redirects")
    if loops:
        issues.append(CrawlIssue(
            "redirect_loop", "warning",
            "Redirect loops detected. Some pages may be inaccessible.",
            loops,
        ))
    return issues


def crawl_metrics(
    pages: Sequence[PageRecord],
    duration_s: float | None,
    disallowed_paths: Sequence[str] = (),
    pages_skipped: int = 0,
) -> CrawlMetrics | None:
    """Throughput figures; None for very small crawls or an unknown duration."""
    if not duration_s or duration_s <= 0 or len(pages) < MIN_PAGES_FOR_METRICS:
        return None
    pages_per_second = len(pages) / duration_s
    load_times = [p.load_time_ms for p in pages if p.load_time_ms]
    average_load = sum(load_times) / len(load_times) if load_times else 0

    if pages_per_second < POOR_PAGES_PER_SECOND:
        queue_health = "poor"
    elif pages_per_second < DEGRADED_PAGES_PER_SECOND:
        queue_health = "degraded"
    else:
        queue_health = "healthy"

    success_rate = sum(1 for p in pages if p.ok) / len(pages)
    speed_score = 100 if pages_per_second > 1 else pages_per_second * 100
    coverage = 20 if len(pages) >= 10 else len(pages) * 2
    efficiency = success_rate * 50 + speed_score * 0.3 + coverage

    return CrawlMetrics(
        time_to_crawl_ms=int(round(duration_s * 1000)),
        pages_per_second=round(pages_per_second, 2),
        average_load_time_ms=int(round(average_load)),
        queue_health=queue_health,
        disallowed_paths=tuple(disallowed_paths),
        pages_skipped=pages_skipped,
        crawl_efficiency=min(100, int(round(efficiency))),
    )


def _recommendations(status: str, platform: str, issues: Sequence[CrawlIssue]) -> list[str]:
    recs: list[str] = []
    if status == STATUS_FAILED:
        recs += [
            "Crawl failed completely.",
            "Verify the site is accessible in a regular browser.",
            "Check whether the site blocks automated crawlers.",
        ]
    elif status == STATUS_PARTIAL:
        recs += [
            "Partial crawl: results may be incomplete.",
            "Some pages may not be accessible to our crawler.",
            "Provide a sitemap.xml for better coverage.",
        ]

    if platform == "wix":
        recs += [
            "Wix site detected. Wix pages rely on heavy JavaScript rendering and crawler protection.",
            'Make sure "Let search engines index your site" is enabled in the Wix SEO settings.',
        ]
    elif platform == "wordpress":
        recs += [
            "WordPress site detected. Make sure no security plugin blocks crawlers.",
            'Check that "Discourage search engines" is not ticked under Settings > Reading.',
        ]

    kinds = {issue.type for issue in issues}
    if "robots_blocked" in kinds:
        recs.append("Allow User-agent: * in robots.txt, or allow our crawler explicitly.")
    if "js_required" in kinds:
        recs.append("Serve key content in the HTML response; some readers do not run JavaScript.")
    if "all_errors" in kinds:
        recs.append("The site may be down or moved. Check DNS settings, hosting status and the URL.")
    if "parking_page" in kinds:
        recs.append("No real content to audit yet. Run the audit again once the site is live.")
    if "redirect_loop" in kinds:
        recs.append("Fix redirects that point back to themselves or bounce between URLs.")
    return recs


def analyze_crawl(
    pages: Sequence[PageRecord],
    start_url: str,
    duration_s: float | None = None,
    disallowed_paths: Sequence[str] = (),
    pages_skipped: int = 0,
) -> CrawlDiagnostics:
    ok_pages = [p for p in pages if p.ok]
    failed = [p for p in pages if p.broken]

    if not ok_pages:
        status = STATUS_FAILED
    elif len(ok_pages) < MIN_PAGES_FOR_SUCCESS or len(failed) / len(pages) > MAX_FAILED_SHARE:
        status = STATUS_PARTIAL
    else:
        status = STATUS_SUCCESS

    platform = site_platform(pages, start_url)
    issues = _crawl_issues(pages, ok_pages)
    return CrawlDiagnostics(
        status=status,
        pages_found=len(pages),
        pages_successful=len(ok_pages),
        pages_failed=len(failed),
        platform=platform,
        issues=tuple(issues),
        recommendations=tuple(_recommendations(status, platform, issues)),
        metrics=crawl_metrics(pages, duration_s, disallowed_paths, pages_skipped),
    )


def status_message(diagnostics: CrawlDiagnostics) -> str:
    if diagnostics.status == STATUS_SUCCESS:
        return f"Full crawl successful: {diagnostics.pages_successful} pages analyzed"
    if diagnostics.status == STATUS_PARTIAL:
        return (f"Partial crawl: {diagnostics.pages_successful} pages analyzed, "
                f"{diagnostics.pages_failed} pages failed")
    return "Crawl failed: unable to access site content"


def is_crawl_sufficient(diagnostics: CrawlDiagnostics) -> bool:
    return diagnostics.status == STATUS_SUCCESS and diagnostics.pages_successful >= MIN_PAGES_FOR_SUCCESS
