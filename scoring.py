"""
scoring.py - Category scores from pages, sitewide signals and issues.

Every category starts at 100 and loses points per issue, weighted by
severity and by the share of pages the issue touches. All magnitudes are
the named constants below.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from models import CategoryScores, Issue, PageRecord, SiteWide

CATEGORY_WEIGHTS = {"technical": 30, "on_page": 30, "content": 25, "accessibility": 15}

# (points per issue, cap) for count-based categories
SEVERITY_PENALTIES = {"High": (12, 50), "Medium": (6, 30), "Low": (2, 10)}
# points at 100% of pages affected, on-page category
ON_PAGE_RATE_PENALTIES = {"High": 65, "Medium": 30, "Low": 10}

MISSING_ROBOTS_PENALTY = 8
MISSING_SITEMAP_PENALTY = 12
BROKEN_RATE_PENALTY = 40
THIN_RATE_PENALTY = 45
MISSING_ALT_RATE_PENALTY = 55
THIN_CONTENT_WORDS = 300


def clamp_score(value: float) -> int:
    if value != value:  # NaN
        return 0
    return int(max(0, min(100, round(value))))


def count_by_severity(issues: Iterable[Issue]) -> dict[str, int]:
    counts = {"High": 0, "Medium": 0, "Low": 0}
    for issue in issues:
        counts[issue.severity] = counts.get(issue.severity, 0) + 1
    return counts


def _affected_share(issue: Issue, total_pages: int) -> float:
    if not issue.affected_pages or total_pages <= 0:
        return 1.0
    return min(1.0, len(issue.affected_pages) / total_pages)


def severity_penalty(issues: Sequence[Issue], total_pages: int) -> float:
    """Per-issue points scaled between 50% and 100% by the share of pages affected, capped per severity."""
    penalty = 0.0
    for severity, (points, cap) in SEVERITY_PENALTIES.items():
        raw = sum(points * (0.5 + 0.5 * _affected_share(i, total_pages)) for i in issues if i.severity == severity)
        penalty += min(raw, cap)
    return penalty


def affected_rate(issues: Sequence[Issue], severity: str, total_pages: int) -> float:
    if total_pages <= 0:
        return 0.0
    pages = {url for issue in issues if issue.severity == severity for url in issue.affected_pages}
    return min(1.0, len(pages) / total_pages)


def technical_score(pages: Sequence[PageRecord], site_wide: SiteWide, issues: Sequence[Issue]) -> int:
    analyzed = sum(1 for p in pages if p.ok)
    score = 100.0
    if not site_wide.robots_txt_exists:
        score -= MISSING_ROBOTS_PENALTY
    if not site_wide.sitemap_exists:
        score -= MISSING_SITEMAP_PENALTY
    if pages:
        score -= min(len(site_wide.broken_pages) / len(pages) * BROKEN_RATE_PENALTY, BROKEN_RATE_PENALTY)
    score -= severity_penalty(issues, analyzed)
    return clamp_score(score)


def on_page_score(pages: Sequence[PageRecord], issues: Sequence[Issue]) -> int:
    analyzed = sum(1 for p in pages if p.ok)
    score = 100.0
    for severity, points in ON_PAGE_RATE_PENALTIES.items():
        score -= affected_rate(issues, severity, analyzed) * points
    return clamp_score(score)


def content_score(pages: Sequence[PageRecord], issues: Sequence[Issue]) -> int:
    analyzed = [p for p in pages if p.ok]
    score = 100.0
    if analyzed:
        thin = sum(1 for p in analyzed if p.word_count < THIN_CONTENT_WORDS)
        score -= thin / len(analyzed) * THIN_RATE_PENALTY
    score -= severity_penalty(issues, len(analyzed))
    return clamp_score(score)


def accessibility_score(pages: Sequence[PageRecord], issues: Sequence[Issue]) -> int:
    analyzed = [p for p in pages if p.ok]
    score = 100.0
    total_images = sum(p.image_count for p in analyzed)
    if total_images:
        missing = sum(p.images_without_alt for p in analyzed)
        score -= missing / total_images * MISSING_ALT_RATE_PENALTY
    score -= severity_penalty(issues, len(analyzed))
    return clamp_score(score)


def overall_score(technical: int, on_page: int, content: int, accessibility: int) -> int:
    weighted = (
        technical * CATEGORY_WEIGHTS["technical"]
        + on_page * CATEGORY_WEIGHTS["on_page"]
        + content * CATEGORY_WEIGHTS["content"]
        + accessibility * CATEGORY_WEIGHTS["accessibility"]
    )
    return clamp_score(weighted / sum(CATEGORY_WEIGHTS.values()))


def score(pages: Sequence[PageRecord], site_wide: SiteWide, issues: dict[str, Sequence[Issue]]) -> CategoryScores:
    """issues is keyed like AuditResult fields: technical_issues, on_page_issues, ..."""
    technical = technical_score(pages, site_wide, issues.get("technical_issues", ()))
    on_page = on_page_score(pages, issues.get("on_page_issues", ()))
    content = content_score(pages, issues.get("content_issues", ()))
    accessibility = accessibility_score(pages, issues.get("accessibility_issues", ()))
    return CategoryScores(
        overall=overall_score(technical, on_page, content, accessibility),
        technical=technical,
        on_page=on_page,
        content=content,
        accessibility=accessibility,
    )
