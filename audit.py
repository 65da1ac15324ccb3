# audit.py
"""
Audit entry point.

    result = run_audit("https://example.com", AuditOptions(tier="professional"))
    json.dumps(result.to_dict())

Pipeline: crawl -> site rollup -> page issues -> issue policy -> scores ->
summary -> QA loop. The competitor crawl starts alongside the main crawl;
PageSpeed starts once the primary page is known and overlaps the rollup.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import NamedTuple

import config
import issue_generator
import site_aggregator
from competitor_analysis import compare_keywords, crawl_competitors
from crawl_diagnostics import analyze_crawl, status_message
from crawler import STOP_FRONTIER_EXHAUSTED, Crawler
from errors import AddOnFailure, FatalInputError
from issue_policy import apply_issue_policy
from keyword_processor import rank_site_keywords
from models import TIERS, AddOns, AuditOptions, AuditResult, Summary
from performance_metrics import PageSpeedClient, fetch_performance, performance_issues
from qa_tools import format_qa_report, run_qa_loop
from renderer import Renderer, build_renderer
from scoring import count_by_severity, score
from url_normalizer import normalize_url

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
DEFAULT_TIER = "standard"


class TierLimits(NamedTuple):
    max_pages: int
    max_depth: int
    keywords: int


TIER_LIMITS = {
    "starter": TierLimits(5, 2, 5),
    "standard": TierLimits(20, 3, 10),
    "professional": TierLimits(50, 5, 15),
    "agency": TierLimits(100, 5, 20),
}


def resolve_options(options: AuditOptions | None) -> tuple[AuditOptions, int]:
    """
    Fill max_pages/max_depth from the tier unless given explicitly and apply
    the crawl-affecting add-ons. Returns (options, keyword limit).
    """
    options = options or AuditOptions()
    tier = (options.tier or DEFAULT_TIER).lower()
    if tier not in TIER_LIMITS:
        raise FatalInputError("invalid_tier", f"{options.tier!r} is not one of {', '.join(TIERS)}")
    limits = TIER_LIMITS[tier]
    add_ons = options.add_ons or AddOns()

    max_pages = limits.max_pages if options.max_pages is None else max(1, int(options.max_pages))
    max_depth = limits.max_depth if options.max_depth is None else max(0, int(options.max_depth))
    if add_ons.extra_crawl_depth:
        max_depth += 1
    keyword_limit = limits.keywords + max(0, int(add_ons.additional_keywords))

    resolved = replace(
        options,
        tier=tier,
        add_ons=add_ons,
        max_pages=max_pages,
        max_depth=max_depth,
        workers=options.workers or config.CRAWL_WORKERS,
        crawl_timeout=options.crawl_timeout or config.CRAWL_TIMEOUT,
    )
    return resolved, keyword_limit


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _include_schema(options: AuditOptions) -> bool:
    return options.tier != "starter" or options.add_ons.schema_deep_dive


def run_audit(
    url: str,
    options: AuditOptions | None = None,
    renderer: Renderer | None = None,
    file_renderer: Renderer | None = None,
    pagespeed: PageSpeedClient | None = None,
) -> AuditResult:
    """
    Audit one site. Raises FatalInputError for an unusable start URL or when
    no page could be fetched; every other failure ends up in the result.
    """
    start_url = normalize_url(url)
    if not start_url:
        raise FatalInputError("invalid_url", url)
    options, keyword_limit = resolve_options(options)
    add_ons = options.add_ons
    renderer = renderer or build_renderer()
    started_at = _now()
    add_on_errors: dict[str, str] = {}

    competitor_urls = list(options.competitor_urls)
    run_competitors = bool(competitor_urls) or add_ons.competitor_analysis
    if add_ons.competitor_analysis and not competitor_urls:
        logger.warning("Competitor analysis requested without competitor URLs; skipping")
        add_on_errors["competitor_analysis"] = "no_competitor_urls"
        run_competitors = False

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="addon") as pool:
        competitor_future: Future | None = None
        if run_competitors:
            competitor_future = pool.submit(
                crawl_competitors,
                competitor_urls,
                renderer,
                file_renderer,
                1 + max(0, int(add_ons.additional_competitors)),
            )

        crawler = Crawler(
            renderer,
            max_pages=options.max_pages,
            max_depth=options.max_depth,
            workers=options.workers,
            timeout=options.crawl_timeout,
            file_renderer=file_renderer,
            recommend_alt=add_ons.alt_text_recommendations,
        )
        crawl = crawler.crawl(start_url)
        pages = crawl.pages
        ok_pages = [p for p in pages if p.ok]
        diagnostics = analyze_crawl(pages, start_url, crawl.duration, crawl.disallowed_paths, crawl.pages_skipped)
        logger.info("Crawl diagnostics: %s (platform: %s)", status_message(diagnostics), diagnostics.platform)
        for crawl_issue in diagnostics.issues:
            logger.warning("Crawl issue (%s): %s", crawl_issue.type, crawl_issue.message)
        if not ok_pages:
            errors = sorted({p.error or "unknown" for p in pages})
            raise FatalInputError("no_pages_fetched", f"{start_url} ({', '.join(errors) or 'nothing crawled'})")

        performance_future: Future | None = None
        if add_ons.performance_metrics:
            performance_future = pool.submit(fetch_performance, ok_pages[0].url, pagespeed)

        site_wide, site_issues = site_aggregator.aggregate(
            pages, crawl.site_files, crawl_complete=crawl.stop_reason == STOP_FRONTIER_EXHAUSTED)
        issues = site_issues + issue_generator.page_issues(pages, include_schema=_include_schema(options))

        performance = None
        if performance_future is not None:
            try:
                performance = performance_future.result()
                issues.extend(performance_issues(performance))
            except AddOnFailure as exc:
                logger.warning("Performance metrics omitted: %s", exc)
                add_on_errors["performance_metrics"] = exc.reason

        by_category = apply_issue_policy(issues, (p.url for p in pages))
        scores = score(pages, site_wide, by_category)
        keywords = rank_site_keywords((p.keywords for p in ok_pages), keyword_limit)

        competitor_analysis = None
        if competitor_future is not None:
            try:
                competitor_analysis = compare_keywords(keywords, competitor_future.result())
            except AddOnFailure as exc:
                logger.warning("Competitor analysis omitted: %s", exc)
                add_on_errors["competitor_analysis"] = exc.reason

    counts = count_by_severity(issue for group in by_category.values() for issue in group)
    summary = Summary(
        total_pages=len(pages),
        total_pages_crawled=len(ok_pages),
        error_pages=len(pages) - len(ok_pages),
        overall_score=scores.overall,
        technical_score=scores.technical,
        on_page_score=scores.on_page,
        content_score=scores.content,
        accessibility_score=scores.accessibility,
        high_severity_issues=counts["High"],
        medium_severity_issues=counts["Medium"],
        low_severity_issues=counts["Low"],
        extracted_keywords=tuple(keywords),
    )
    result = AuditResult(
        url=start_url,
        summary=summary,
        pages=pages,
        site_wide=site_wide,
        edges=crawl.edges,
        competitor_analysis=competitor_analysis,
        performance=performance,
        crawl_diagnostics=diagnostics,
        raw={
            "start_time": started_at,
            "end_time": _now(),
            "crawl_duration": round(crawl.duration, 3),
            "stop_reason": crawl.stop_reason,
            "options": asdict(options),
            "keyword_limit": keyword_limit,
            "add_on_errors": add_on_errors,
            "site_files": asdict(crawl.site_files),
        },
        **by_category,
    )
    logger.info("Audit of %s: overall %d/100, %d pages (%d with errors)",
                start_url, summary.overall_score, summary.total_pages, summary.error_pages)
    return run_qa_loop(result)


def save_json(result: AuditResult, out_path: str) -> None:
    payload = {
        "schema_version": SCHEMA_VERSION,
        "generated_at": _now(),
        **result.to_dict(),
    }
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Crawl a website and produce an SEO audit")
    p.add_argument("url")
    p.add_argument("--tier", choices=TIERS, default=DEFAULT_TIER, help="Sets default page and depth limits")
    p.add_argument("--max-pages", type=int, default=None, help="Override the tier's page limit")
    p.add_argument("--max-depth", type=int, default=None, help="Override the tier's depth limit")
    p.add_argument("--competitor", action="append", default=[], metavar="URL",
                   help="Competitor site for keyword gaps (repeatable)")
    p.add_argument("--additional-competitors", type=int, default=0,
                   help="Allow this many competitors beyond the first")
    p.add_argument("--additional-keywords", type=int, default=0, help="Extra keywords beyond the tier's count")
    p.add_argument("--performance", action="store_true", help="Fetch Core Web Vitals from PageSpeed Insights")
    p.add_argument("--schema-deep-dive", action="store_true", help="Report schema issues on any tier")
    p.add_argument("--extra-depth", action="store_true", help="Crawl one level deeper than the tier allows")
    p.add_argument("--alt-text", action="store_true", help="Include alt text recommendations per image")
    p.add_argument("--renderer", choices=["http", "playwright"], default=config.RENDERER)
    p.add_argument("--out", default=None, help="Write the full result as JSON to this file")
    p.add_argument("--ignore-robots", action="store_true", help="Ignore robots.txt (default: respect)")
    return p.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    args = parse_args(argv)
    if args.ignore_robots:
        os.environ["AUDIT_IGNORE_ROBOTS"] = "1"

    options = AuditOptions(
        max_pages=args.max_pages,
        max_depth=args.max_depth,
        tier=args.tier,
        competitor_urls=tuple(args.competitor),
        add_ons=AddOns(
            performance_metrics=args.performance,
            competitor_analysis=bool(args.competitor),
            schema_deep_dive=args.schema_deep_dive,
            extra_crawl_depth=args.extra_depth,
            alt_text_recommendations=args.alt_text,
            additional_keywords=args.additional_keywords,
            additional_competitors=args.additional_competitors,
        ),
    )

    started = time.perf_counter()
    try:
        result = run_audit(args.url, options, renderer=build_renderer(args.renderer))
    except FatalInputError as e:
        logger.error(f"Audit failed for {args.url}: {e}")
        return 1

    s = result.summary
    print(f"{result.url}  overall {s.overall_score}/100")
    print(f"  technical {s.technical_score}  on-page {s.on_page_score}  "
          f"content {s.content_score}  accessibility {s.accessibility_score}")
    print(f"  pages: {s.total_pages} ({s.error_pages} with errors)  "
          f"issues: {s.high_severity_issues} high / {s.medium_severity_issues} medium / {s.low_severity_issues} low")
    if result.crawl_diagnostics is not None:
        print(f"  crawl: {status_message(result.crawl_diagnostics)}")
        for rec in result.crawl_diagnostics.recommendations:
            print(f"    - {rec}")
    if s.extracted_keywords:
        print(f"  keywords: {', '.join(s.extracted_keywords)}")
    if result.competitor_analysis is not None:
        print(f"  keyword gaps: {', '.join(result.competitor_analysis.keyword_gaps) or '(none)'}")
    if result.qa is not None:
        print(format_qa_report(result.qa))

    if args.out:
        save_json(result, args.out)
        logger.info(f"Saved JSON: {args.out}")
    logger.info(f"Done in {time.perf_counter() - started:.1f}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
