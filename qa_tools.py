# qa_tools.py
from __future__ import annotations

import argparse
import json
import logging
import math
from collections import Counter
from dataclasses import replace
from typing import Any, Dict, List, Optional

import config
import llm_readability
from keyword_processor import deduplicate_keywords, is_garbage_keyword
from models import AuditResult, QAIssue, QAReport, Summary
from scoring import clamp_score, count_by_severity

logger = logging.getLogger(__name__)

TIER_EXPECTED_PAGES = {"starter": 5, "standard": 10, "professional": 15, "agency": 20}
SIMILAR_HTML_THRESHOLD = 95.0
SIMILAR_HTML_MIN_DIFF = 100
SCORE_FIELDS = ("overall_score", "technical_score", "on_page_score", "content_score", "accessibility_score")
DUPLICATE_TITLE_PREFIXES = ("Duplicate page title:", "Template-based duplicate title:")

# QA issue categories; repair() dispatches on these.
CAT_ISSUE_COUNTS = "Issue Counts"
CAT_DUPLICATE_TITLES = "Duplicate Titles"
CAT_READABILITY_RANGE = "Readability Range"
CAT_READABILITY_FORMULA = "Readability Formula"
CAT_KEYWORDS = "Keyword Quality"
CAT_SCORE_BOUNDS = "Score Bounds"
CAT_CRAWL = "Crawl Completeness"


def _options(result: AuditResult) -> Dict[str, Any]:
    options = (result.raw or {}).get("options") or {}
    return options if isinstance(options, dict) else {}


def _out_of_range(value: float) -> bool:
    return math.isnan(value) or value < 0 or value > 100


def _duplicate_title_pages(result: AuditResult) -> List[str]:
    pages: List[str] = []
    for issue in result.on_page_issues:
        if issue.message.startswith(DUPLICATE_TITLE_PREFIXES):
            pages.extend(issue.affected_pages)
    return list(dict.fromkeys(pages))


def validate_result(result: AuditResult) -> List[QAIssue]:
    issues: List[QAIssue] = []

    def crit(category: str, msg: str, details: str = "", fixable: bool = True):
        issues.append(QAIssue(category, "critical", msg, details, fixable))

    def warn(category: str, msg: str, details: str = "", fixable: bool = True):
        issues.append(QAIssue(category, "warning", msg, details, fixable))

    summary = result.summary

    # 1. Severity totals must be re-derivable from the issue arrays
    actual = count_by_severity(result.all_issues())
    reported = {
        "High": summary.high_severity_issues,
        "Medium": summary.medium_severity_issues,
        "Low": summary.low_severity_issues,
    }
    for severity, count in actual.items():
        if reported[severity] == count:
            continue
        report = crit if severity in ("High", "Medium") else warn
        report(CAT_ISSUE_COUNTS, f"{severity} issue count mismatch",
               f"Summary reports {reported[severity]}, issue arrays contain {count}")

    if result.site_wide is not None:
        from_issues = set(_duplicate_title_pages(result))
        rolled_up = set(result.site_wide.pages_with_duplicate_titles)
        if from_issues != rolled_up:
            warn(CAT_DUPLICATE_TITLES, "Duplicate-title page set does not match issues",
                 f"{len(from_issues)} pages in issues, {len(rolled_up)} in sitewide rollup")

    # 2. Readability values
    for page in result.pages:
        llm = page.llm_readability
        if llm is None:
            continue
        if _out_of_range(llm.rendering_percentage) or _out_of_range(llm.similarity):
            crit(CAT_READABILITY_RANGE, f"Invalid rendering percentage: {llm.rendering_percentage}",
                 f"{page.url}: rendering percentage and similarity must be between 0 and 100")
            continue
        initial, rendered = llm.initial_html_length, llm.rendered_html_length
        if llm.rendering_percentage == 0 and initial > 0 and rendered > 0:
            similarity = min(initial, rendered) / max(initial, rendered) * 100
            diff = abs(initial - rendered)
            if similarity > SIMILAR_HTML_THRESHOLD and diff > SIMILAR_HTML_MIN_DIFF:
                crit(CAT_READABILITY_FORMULA,
                     f"Rendering percentage shows 0% but HTML is {similarity:.1f}% similar",
                     f"{page.url}: initial {initial} chars, rendered {rendered} chars, difference {diff}")

    # 3. Keyword quality
    keywords = list(summary.extracted_keywords)
    garbage = [kw for kw in keywords if is_garbage_keyword(kw)]
    if garbage:
        warn(CAT_KEYWORDS, f"Found {len(garbage)} low-quality keywords", ", ".join(repr(k) for k in garbage[:10]))
    repeated = [kw for kw, n in Counter(k.strip().lower() for k in keywords).items() if n > 1]
    if repeated:
        warn(CAT_KEYWORDS, f"Found {len(repeated)} duplicate keywords", ", ".join(repeated[:10]))

    # 4. Score bounds
    for name in SCORE_FIELDS:
        value = getattr(summary, name)
        if not isinstance(value, int) or value < 0 or value > 100:
            crit(CAT_SCORE_BOUNDS, f"{name} out of bounds", f"Value {value!r} is outside 0-100")

    # 5. Crawl completeness
    options = _options(result)
    tier = options.get("tier") or "standard"
    expected = TIER_EXPECTED_PAGES.get(tier, TIER_EXPECTED_PAGES["standard"])
    max_pages = options.get("max_pages") or expected
    crawled = len(result.pages)
    if crawled < expected and crawled < max_pages:
        crit(CAT_CRAWL, f"Only {crawled} pages crawled, expected at least {expected} for {tier} tier",
             f"Max pages allowed: {max_pages}; the site may have few linked pages or the crawl stopped early",
             fixable=False)

    return issues


def qa_score(issues: List[QAIssue]) -> int:
    critical = sum(1 for i in issues if i.severity == "critical")
    warnings = sum(1 for i in issues if i.severity == "warning")
    return max(0, 10 - 2 * critical - warnings)


def _recount(summary: Summary, result: AuditResult) -> Summary:
    counts = count_by_severity(result.all_issues())
    return replace(
        summary,
        high_severity_issues=counts["High"],
        medium_severity_issues=counts["Medium"],
        low_severity_issues=counts["Low"],
    )


def _repair_readability(result: AuditResult, recompute: bool) -> AuditResult:
    pages = []
    for page in result.pages:
        llm = page.llm_readability
        if llm is not None:
            if recompute:
                llm = llm_readability.from_lengths(llm.initial_html_length, llm.rendered_html_length)
            else:
                llm = replace(
                    llm,
                    rendering_percentage=llm_readability.clamp_percentage(llm.rendering_percentage),
                    similarity=llm_readability.clamp_percentage(llm.similarity),
                )
            page = replace(page, llm_readability=llm)
        pages.append(page)
    return replace(result, pages=tuple(pages))


def repair(result: AuditResult, issues: List[QAIssue]) -> AuditResult:
    """Return a new result with every fixable issue's remedy applied; the input is not modified."""
    categories = {i.category for i in issues if i.fixable}
    fixed = result

    if CAT_READABILITY_FORMULA in categories:
        fixed = _repair_readability(fixed, recompute=True)
    if CAT_READABILITY_RANGE in categories:
        fixed = _repair_readability(fixed, recompute=False)
    if CAT_DUPLICATE_TITLES in categories and fixed.site_wide is not None:
        site_wide = replace(fixed.site_wide, pages_with_duplicate_titles=tuple(_duplicate_title_pages(fixed)))
        fixed = replace(fixed, site_wide=site_wide)

    summary = fixed.summary
    if CAT_ISSUE_COUNTS in categories:
        summary = _recount(summary, fixed)
    if CAT_KEYWORDS in categories:
        summary = replace(summary, extracted_keywords=tuple(deduplicate_keywords(summary.extracted_keywords)))
    if CAT_SCORE_BOUNDS in categories:
        summary = replace(summary, **{name: clamp_score(getattr(summary, name)) for name in SCORE_FIELDS})
    if summary is not fixed.summary:
        fixed = replace(fixed, summary=summary)
    return fixed


def run_qa_loop(
    result: AuditResult,
    max_attempts: int = config.QA_MAX_ATTEMPTS,
    target_score: int = config.QA_TARGET_SCORE,
) -> AuditResult:
    """
    Validate, repair fixable issues, re-validate. Stops when the QA score
    reaches target_score, when nothing left is fixable, or after
    max_attempts validations. Returns the last result with its QAReport.
    """
    max_attempts = max(1, int(max_attempts))
    current = result
    attempts = 0
    while True:
        attempts += 1
        issues = validate_result(current)
        score = qa_score(issues)
        if score >= target_score:
            break
        fixable = [i for i in issues if i.fixable]
        if not fixable:
            logger.info("QA score %d/10 with no fixable issues left", score)
            break
        if attempts >= max_attempts:
            logger.warning("QA repair exhausted after %d attempts (score %d/10, %d fixable issues remain)",
                           attempts, score, len(fixable))
            break
        logger.info("QA attempt %d: score %d/10, repairing %d issues", attempts, score, len(fixable))
        current = repair(current, fixable)

    report = QAReport(
        score=score,
        passed=score >= target_score,
        attempts=attempts,
        critical_count=sum(1 for i in issues if i.severity == "critical"),
        warning_count=sum(1 for i in issues if i.severity == "warning"),
        issues=tuple(issues),
    )
    return replace(current, qa=report)


def format_qa_report(report: QAReport) -> str:
    lines = [f"QA score: {report.score}/10 ({'passed' if report.passed else 'failed'}, {report.attempts} attempts)"]
    for issue in report.issues:
        mark = "fixable" if issue.fixable else "manual"
        lines.append(f"[{issue.severity.upper()}] {issue.category}: {issue.message} ({mark})")
        if issue.details:
            lines.append(f"    {issue.details}")
    return "\n".join(lines)


def _read_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Show the QA report stored in an audit result JSON")
    ap.add_argument("result_json")
    ap.add_argument("--json", action="store_true", help="Emit the QA block as JSON")
    args = ap.parse_args(argv)

    qa = _read_json(args.result_json).get("qa")
    if not qa:
        print(f"No QA report in: {args.result_json}")
        raise SystemExit(1)

    if args.json:
        print(json.dumps(qa, ensure_ascii=False, indent=2))
    else:
        issues = tuple(QAIssue(**i) for i in qa.get("issues") or [])
        print(format_qa_report(QAReport(**{**qa, "issues": issues})))
    raise SystemExit(0 if qa.get("passed") else 2)


if __name__ == "__main__":
    main()
