"""
site_aggregator.py - Cross-page rollups: duplicate titles and descriptions,
template detection, broken pages, orphan pages, robots.txt and sitemap
presence.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Sequence

from models import DuplicateGroup, Issue, PageRecord, SiteFiles, SiteWide
from url_normalizer import normalize_url, same_site

logger = logging.getLogger(__name__)

TEMPLATE_MIN_GROUP = 3
TEMPLATE_MIN_SHARE = 0.5
TEMPLATE_WORD_TOLERANCE = 50
ORPHAN_EXAMPLES = 5


def normalize_text_key(value: str) -> str:
    return re.sub(r"\s+", " ", (value or "").strip()).casefold()


def group_duplicates(pages: Sequence[PageRecord], key: Callable[[PageRecord], str]) -> list[list[PageRecord]]:
    """Groups of more than one page sharing a non-empty key, in first-seen order."""
    groups: dict[str, list[PageRecord]] = {}
    for page in pages:
        value = normalize_text_key(key(page))
        if value:
            groups.setdefault(value, []).append(page)
    return [members for members in groups.values() if len(members) > 1]


def is_template_group(group: Sequence[PageRecord], total_pages: int) -> bool:
    """
    A shared title comes from a page template when the group is large (>= 3
    pages and at least half the site) and its pages are structurally alike:
    word counts within 50 of the group average and identical H1/H2 counts.
    """
    if len(group) < TEMPLATE_MIN_GROUP or total_pages <= 0:
        return False
    if len(group) / total_pages < TEMPLATE_MIN_SHARE:
        return False
    average = sum(p.word_count for p in group) / len(group)
    if any(abs(p.word_count - average) > TEMPLATE_WORD_TOLERANCE for p in group):
        return False
    if len({p.h1_count for p in group}) != 1:
        return False
    return len({p.h2_count for p in group}) == 1


def find_duplicate_titles(pages: Sequence[PageRecord]) -> tuple[DuplicateGroup, ...]:
    eligible = [p for p in pages if p.ok]
    result = []
    for group in group_duplicates(eligible, lambda p: p.title):
        template = is_template_group(group, len(eligible))
        result.append(DuplicateGroup(
            value=group[0].title.strip(),
            pages=tuple(p.url for p in group),
            template_based=template,
            severity="Low" if template else "Medium",
        ))
    return tuple(result)


def find_duplicate_descriptions(pages: Sequence[PageRecord]) -> tuple[DuplicateGroup, ...]:
    eligible = [p for p in pages if p.ok]
    return tuple(
        DuplicateGroup(value=group[0].meta_description.strip(), pages=tuple(p.url for p in group),
                       template_based=False, severity="Medium")
        for group in group_duplicates(eligible, lambda p: p.meta_description)
    )


def duplicate_title_issue(group: DuplicateGroup) -> Issue:
    if group.template_based:
        return Issue(
            category="On-page",
            severity="Low",
            message=f'Template-based duplicate title: "{group.value}"',
            details=f"Found on {len(group.pages)} structurally similar pages, likely a shared page template",
            affected_pages=group.pages,
        )
    return Issue(
        category="On-page",
        severity="Medium",
        message=f'Duplicate page title: "{group.value}"',
        details=f"Found on {len(group.pages)} pages",
        affected_pages=group.pages,
    )


def description_duplicate_issue(group: DuplicateGroup) -> Issue:
    return Issue(
        category="On-page",
        severity="Medium",
        message=f'Duplicate meta description: "{group.value[:80]}"',
        details=f"Found on {len(group.pages)} pages",
        affected_pages=group.pages,
    )


def find_orphan_pages(pages: Sequence[PageRecord], sitemap_urls: Sequence[str]) -> tuple[str, ...]:
    """
    Sitemap pages that no crawled page links to. The first crawled page is
    the entry point and crawled pages were reached somehow, so neither counts.
    """
    if not pages or not sitemap_urls:
        return ()
    root = pages[0].url
    reached = {p.url for p in pages} | {normalize_url(p.final_url) for p in pages if p.final_url}
    reached.update(link for p in pages if p.ok for link in p.internal_links)
    return tuple(u for u in sitemap_urls if same_site(u, root) and u not in reached)


def orphan_issue(orphans: Sequence[str]) -> Issue:
    examples = ", ".join(orphans[:ORPHAN_EXAMPLES])
    more = f" and {len(orphans) - ORPHAN_EXAMPLES} more" if len(orphans) > ORPHAN_EXAMPLES else ""
    return Issue("On-page", "Medium", "Orphan pages detected",
                 f"{len(orphans)} sitemap page{'s are' if len(orphans) != 1 else ' is'} not linked from any "
                 f"crawled page: {examples}{more}")


def sitewide_file_issues(files: SiteFiles) -> list[Issue]:
    issues = []
    if not files.robots_txt_exists:
        issues.append(Issue("Technical", "Low", "Missing robots.txt",
                            "robots.txt file not found. It tells search engines which areas to crawl."))
    elif not files.robots_txt_reachable:
        issues.append(Issue("Technical", "Medium", "robots.txt unreachable",
                            "robots.txt exists but could not be read (server returned an error)."))
    if not files.sitemap_exists:
        issues.append(Issue("Technical", "Medium", "Missing sitemap.xml",
                            "No XML sitemap found at the usual locations or declared in robots.txt."))
    elif not files.sitemap_reachable:
        issues.append(Issue("Technical", "Low", "Invalid sitemap.xml",
                            f"Sitemap at {files.sitemap_url} could not be read or parsed."))
    return issues


def aggregate(pages: Sequence[PageRecord], files: SiteFiles,
              crawl_complete: bool = True) -> tuple[SiteWide, list[Issue]]:
    """Orphans are only judged when the crawl ran out of links rather than budget."""
    titles = find_duplicate_titles(pages)
    descriptions = find_duplicate_descriptions(pages)
    broken = tuple(p.url for p in pages if p.broken)
    duplicate_pages = tuple(dict.fromkeys(url for group in titles for url in group.pages))
    orphans = find_orphan_pages(pages, files.sitemap_page_urls) if crawl_complete else ()

    issues: list[Issue] = [duplicate_title_issue(group) for group in titles]
    issues.extend(description_duplicate_issue(group) for group in descriptions)
    if broken:
        issues.append(Issue("Technical", "High", "Broken pages detected",
                            f"{len(broken)} page{'s' if len(broken) != 1 else ''} returned errors", broken))
    if orphans:
        issues.append(orphan_issue(orphans))
    issues.extend(sitewide_file_issues(files))

    logger.info("Site rollup: %d duplicate title groups, %d broken pages, %d orphan pages",
                len(titles), len(broken), len(orphans))
    site_wide = SiteWide(
        robots_txt_exists=files.robots_txt_exists,
        robots_txt_reachable=files.robots_txt_reachable,
        sitemap_exists=files.sitemap_exists,
        sitemap_reachable=files.sitemap_reachable,
        sitemap_url=files.sitemap_url,
        duplicate_titles=titles,
        duplicate_meta_descriptions=descriptions,
        pages_with_duplicate_titles=duplicate_pages,
        broken_pages=broken,
        orphan_pages=orphans,
    )
    return site_wide, issues
