"""
issue_generator.py - Page-level issues.

Each check emits one Issue per affected page; issue_policy.consolidate_issues
later merges them into one issue per (category, severity, message), so
details must hold for every page the issue ends up listing.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import llm_readability
from models import Issue, PageRecord
from schema_analyzer import REQUIRED_IDENTITY_FIELDS

TITLE_MIN, TITLE_MAX = 30, 60
DESCRIPTION_MIN, DESCRIPTION_MAX = 120, 160
THIN_CONTENT_WORDS = 300
URL_MAX_LENGTH = 100
REDIRECT_CHAIN_MIN = 2
FEW_INTERNAL_LINKS = 3
LAZY_IMAGES_MIN = 5
LAZY_IMAGES_SHARE = 0.5
SECURITY_HEADERS = (
    ("x-frame-options", "X-Frame-Options",
     'X-Frame-Options prevents clickjacking. Recommended: "SAMEORIGIN" or "DENY".'),
    ("x-content-type-options", "X-Content-Type-Options",
     "X-Content-Type-Options: nosniff prevents MIME type sniffing."),
    ("content-security-policy", "Content-Security-Policy",
     "A Content-Security-Policy limits script injection and other code injection attacks."),
    ("referrer-policy", "Referrer-Policy",
     'Referrer-Policy controls how much referrer information is shared, e.g. "strict-origin-when-cross-origin".'),
)


def _issue(category: str, severity: str, message: str, page: PageRecord, details: str = "") -> Issue:
    return Issue(category, severity, message, details, (page.url,))


def metadata_issues(page: PageRecord) -> Iterable[Issue]:
    title_length = len(page.title)
    if not page.title:
        yield _issue("On-page", "High", "Missing page title", page)
    elif title_length < TITLE_MIN:
        yield _issue("On-page", "Medium", "Page title too short", page,
                     f"Title is under {TITLE_MIN} characters (recommended: 50-60)")
    elif title_length > TITLE_MAX:
        yield _issue("On-page", "Low", "Page title too long", page,
                     f"Title is over {TITLE_MAX} characters (recommended: 50-60)")

    description_length = len(page.meta_description)
    if not page.meta_description:
        yield _issue("On-page", "High", "Missing meta description", page)
    elif description_length < DESCRIPTION_MIN:
        yield _issue("On-page", "Medium", "Meta description too short", page,
                     f"Description is under {DESCRIPTION_MIN} characters (recommended: 120-160)")
    elif description_length > DESCRIPTION_MAX:
        yield _issue("On-page", "Low", "Meta description too long", page,
                     f"Description is over {DESCRIPTION_MAX} characters (recommended: 120-160)")

    if page.h1_count == 0:
        yield _issue("On-page", "High", "Missing H1 tag", page)
    elif page.h1_count > 1:
        yield _issue("On-page", "Medium", "Multiple H1 tags", page,
                     "Use exactly one H1 per page.")

    if not page.canonical:
        yield _issue("On-page", "Medium", "Missing canonical tag", page,
                     'Add <link rel="canonical" href="[preferred-url]"> to the <head> section.')


def technical_issues(page: PageRecord) -> Iterable[Issue]:
    if not page.has_viewport:
        yield _issue("Technical", "High", "Missing viewport meta tag", page, "Required for mobile responsiveness")
    if page.has_noindex:
        yield _issue("Technical", "High", "Page has noindex directive", page,
                     "This page will not be indexed by search engines.")
    if page.has_nofollow:
        yield _issue("Technical", "Medium", "Page has nofollow directive", page,
                     "Search engines will not follow links on this page.")

    readability = page.llm_readability
    if readability is not None:
        severity = llm_readability.rendering_severity(readability)
        if severity == "High":
            yield _issue("Technical", "High", "High rendering percentage (LLM Readability)", page,
                         f"Scripts add more than {llm_readability.HIGH_RENDERING_THRESHOLD:.0f}% to the served HTML; "
                         "content may be missed by automated readers")
        elif severity == "Low":
            yield _issue("Technical", "Low", "Moderate rendering percentage (LLM Readability)", page,
                         f"Scripts add more than {llm_readability.MODERATE_RENDERING_THRESHOLD:.0f}% to the served HTML")


def transport_issues(page: PageRecord) -> Iterable[Issue]:
    """HTTPS, response headers, redirects and URL shape. Header checks need recorded headers."""
    if not page.uses_https:
        yield _issue("Technical", "High", "Site not using HTTPS", page,
                     "HTTPS is required for security and SEO. Search engines prefer HTTPS pages.")
    elif page.mixed_content:
        yield _issue("Technical", "Medium", "Mixed content detected", page,
                     "HTTPS pages should not load HTTP resources. Update those resources to HTTPS.")
    if page.redirect_count >= REDIRECT_CHAIN_MIN:
        yield _issue("Technical", "Medium", "Redirect chain detected", page,
                     "The page is reached through more than one redirect. Point links at the final URL.")
    if len(page.final_url or page.url) > URL_MAX_LENGTH:
        yield _issue("Technical", "Low", "URL too long", page,
                     f"Keep URLs under {URL_MAX_LENGTH} characters for readability and sharing.")
    if page.render_timed_out:
        yield _issue("Technical", "Low", "Page did not finish rendering", page,
                     "Rendering timed out; the page was analyzed as far as it had loaded.")

    headers = page.response_headers
    if headers is None:
        return
    if page.uses_https and "strict-transport-security" not in headers:
        yield _issue("Technical", "Medium", "Missing HSTS header", page,
                     "Strict-Transport-Security prevents protocol downgrade attacks and cookie hijacking.")
    for header, label, advice in SECURITY_HEADERS:
        if header not in headers:
            yield _issue("Technical", "Low", f"Missing {label} header", page, advice)
    if not headers.get("content-encoding"):
        yield _issue("Technical", "Medium", "No compression enabled", page,
                     "Enable gzip or Brotli compression to reduce page size and improve load times.")
    if "cache-control" not in headers:
        yield _issue("Technical", "Medium", "Missing Cache-Control header", page,
                     "Cache-Control headers improve load times for returning visitors.")


def structure_issues(page: PageRecord) -> Iterable[Issue]:
    """Heading outline, social tags, image loading and internal linking."""
    if page.h1_count and not page.h2_count:
        yield _issue("On-page", "Medium", "Missing H2 tags", page,
                     "Use H2 tags to structure the content into logical sections.")
    if page.skipped_heading_levels:
        yield _issue("On-page", "Medium", "Improper heading hierarchy", page,
                     "Headings skip levels (e.g. H1 followed by H3). Keep the order H1, H2, H3, H4.")
    if not page.has_open_graph:
        yield _issue("On-page", "Low", "Missing Open Graph tags", page,
                     "Add og:title, og:description and og:image to control how the page looks when shared.")
    if not page.has_twitter_card:
        yield _issue("On-page", "Low", "Missing Twitter Card tags", page,
                     "Add twitter:card, twitter:title and twitter:description.")
    if page.image_count > LAZY_IMAGES_MIN and page.lazy_image_count < page.image_count * LAZY_IMAGES_SHARE:
        yield _issue("On-page", "Low", "Images not using lazy loading", page,
                     'Add loading="lazy" to images below the fold.')
    if page.internal_link_count is None:
        return
    if page.internal_link_count == 0:
        yield _issue("On-page", "Medium", "No internal links found", page,
                     "Internal links spread page authority and help visitors navigate. Link to related pages.")
    elif page.internal_link_count < FEW_INTERNAL_LINKS:
        yield _issue("On-page", "Low", "Few internal links", page,
                     f"Fewer than {FEW_INTERNAL_LINKS} internal links. Aim for 3-5 contextual links per page.")


def schema_issues(page: PageRecord) -> Iterable[Issue]:
    schema = page.schema
    if schema is None:
        return
    if schema.invalid_json_ld_blocks:
        yield _issue("Technical", "Low", "Invalid JSON-LD schema markup", page,
                     "Found a malformed JSON-LD script tag. Check syntax.")
    if not schema.has_schema:
        yield _issue("Technical", "Medium", "Missing schema markup", page,
                     "No Schema.org structured data detected. Add JSON-LD or microdata.")
        return
    if not schema.has_identity_schema:
        yield _issue("Technical", "Medium", "Missing Identity Schema", page,
                     "No Organization or Person schema identifies who owns the website.")
    elif schema.missing_fields:
        yield _issue("Technical", "Low", f"Incomplete {schema.identity_type} Schema", page,
                     "Some required fields are missing. Required: "
                     f"{', '.join(REQUIRED_IDENTITY_FIELDS.get(schema.identity_type, ()))}")


def content_issues(page: PageRecord) -> Iterable[Issue]:
    if page.word_count < THIN_CONTENT_WORDS:
        yield _issue("Content", "Medium", "Thin content", page,
                     f"Fewer than {THIN_CONTENT_WORDS} words of visible text (recommended: 300+)")


def accessibility_issues(page: PageRecord) -> Iterable[Issue]:
    if page.images_without_alt:
        yield _issue("Accessibility", "Medium", "Images missing alt text", page,
                     "Some images have no alt attribute")
    if page.empty_interactives:
        yield _issue("Accessibility", "Medium", "Links or buttons without accessible text", page,
                     "Some links or buttons have no text or label")
    if not page.has_lang:
        yield _issue("Accessibility", "Low", "Missing language attribute", page,
                     'Declare the page language, e.g. <html lang="en">.')


def page_issues(pages: Sequence[PageRecord], include_schema: bool = True) -> list[Issue]:
    """Issues for successfully fetched pages; broken pages are reported by the site rollup."""
    issues: list[Issue] = []
    for page in pages:
        if not page.ok:
            continue
        issues.extend(metadata_issues(page))
        issues.extend(technical_issues(page))
        issues.extend(transport_issues(page))
        issues.extend(structure_issues(page))
        issues.extend(content_issues(page))
        issues.extend(accessibility_issues(page))
        if include_schema:
            issues.extend(schema_issues(page))
    return issues
