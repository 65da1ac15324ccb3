from __future__ import annotations

import logging
from typing import Iterable

from models import CATEGORIES, SEVERITIES, Issue

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"High": 0, "Medium": 1, "Low": 2}
CATEGORY_ALIASES = {
    "technical": "Technical",
    "on-page": "On-page",
    "onpage": "On-page",
    "content": "Content",
    "accessibility": "Accessibility",
    "performance": "Performance",
}
CATEGORY_FIELDS = {
    "Technical": "technical_issues",
    "On-page": "on_page_issues",
    "Content": "content_issues",
    "Accessibility": "accessibility_issues",
    "Performance": "performance_issues",
}


def normalize_issue(issue: Issue) -> Issue:
    """
    Canonical category/severity spelling and de-duplicated affected pages.
    Unknown severities fall back to Low; unknown categories to Technical.
    """
    category = CATEGORY_ALIASES.get(issue.category.strip().lower(), issue.category)
    if category not in CATEGORIES:
        logger.debug("Unknown issue category %r, filing under Technical", issue.category)
        category = "Technical"
    severity = issue.severity.strip().capitalize()
    if severity not in SEVERITIES:
        severity = "Low"
    pages = tuple(dict.fromkeys(p for p in issue.affected_pages if p))
    return Issue(category, severity, issue.message, issue.details, pages)


def consolidate_issues(issues: Iterable[Issue]) -> list[Issue]:
    """Merge issues sharing category, severity and message; first details win, pages are unioned."""
    merged: dict[tuple[str, str, str], Issue] = {}
    for issue in issues:
        issue = normalize_issue(issue)
        key = (issue.category, issue.severity, issue.message)
        current = merged.get(key)
        if current is None:
            merged[key] = issue
            continue
        pages = tuple(dict.fromkeys((*current.affected_pages, *issue.affected_pages)))
        merged[key] = Issue(current.category, current.severity, current.message,
                            current.details or issue.details, pages)
    return list(merged.values())


def restrict_to_pages(issues: Iterable[Issue], page_urls: Iterable[str]) -> list[Issue]:
    """
    Keep affected pages that exist in the crawl. Page-level issues left with
    no page are dropped; sitewide issues (no pages to begin with) stay.
    """
    known = set(page_urls)
    kept: list[Issue] = []
    for issue in issues:
        if not issue.affected_pages:
            kept.append(issue)
            continue
        pages = tuple(p for p in issue.affected_pages if p in known)
        if not pages:
            logger.debug("Dropping issue %r: none of its pages were crawled", issue.message)
            continue
        kept.append(Issue(issue.category, issue.severity, issue.message, issue.details, pages))
    return kept


def sort_by_priority(issues: Iterable[Issue]) -> list[Issue]:
    return sorted(issues, key=lambda i: (SEVERITY_RANK[i.severity], -len(i.affected_pages), i.message))


def split_by_category(issues: Iterable[Issue]) -> dict[str, tuple[Issue, ...]]:
    buckets: dict[str, list[Issue]] = {field: [] for field in CATEGORY_FIELDS.values()}
    for issue in issues:
        buckets[CATEGORY_FIELDS[issue.category]].append(issue)
    return {field: tuple(sort_by_priority(items)) for field, items in buckets.items()}


def apply_issue_policy(issues: Iterable[Issue], page_urls: Iterable[str]) -> dict[str, tuple[Issue, ...]]:
    return split_by_category(restrict_to_pages(consolidate_issues(issues), page_urls))
