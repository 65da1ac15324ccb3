from __future__ import annotations

import copy
import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

import keyword_processor
import llm_readability
from accessibility_heuristic import audit_a11y
from crawl_diagnostics import detect_platform
from models import PageRecord
from schema_analyzer import analyze_schema
from url_normalizer import is_html_candidate, normalize_url, same_site

logger = logging.getLogger(__name__)

INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg", "iframe")
# Subresources a browser loads with the page; plain links and canonicals are not.
SUBRESOURCE_ATTRS = (
    ("img", "src"),
    ("script", "src"),
    ("iframe", "src"),
    ("source", "src"),
    ("video", "src"),
    ("audio", "src"),
)
LOADED_LINK_RELS = {"stylesheet", "icon", "preload", "manifest"}
HEADING_TAG = re.compile(r"^h[1-6]$")


def _attr_to_str(value: object) -> str | None:
    if isinstance(value, str):
        return value
    return None


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"name": re.compile(f"^{re.escape(name)}$", re.I)})
    if not tag:
        return ""
    return (_attr_to_str(tag.get("content")) or "").strip()


def visible_text(soup: BeautifulSoup) -> str:
    body = copy.copy(soup.body or soup)
    for tag in body.find_all(INVISIBLE_TAGS):
        tag.decompose()
    return re.sub(r"\s+", " ", body.get_text(" ", strip=True)).strip()


def extract_links(soup: BeautifulSoup, page_url: str, root_url: str) -> list[str]:
    """Same-site page links, normalized, in document order."""
    links: list[str] = []
    seen: set[str] = set()
    base_tag = soup.find("base", href=True)
    base_url = page_url
    if base_tag:
        # Raw base href: its trailing slash decides how relative links resolve.
        try:
            base_url = urljoin(page_url, _attr_to_str(base_tag.get("href")) or "")
        except ValueError:
            logger.debug("Ignoring malformed <base href> on %s", page_url)
    for a in soup.find_all("a", href=True):
        rel = a.get("rel") or []
        if "nofollow" in rel:
            continue
        normalized = normalize_url(_attr_to_str(a.get("href")) or "", base_url or page_url)
        if not normalized or normalized in seen:
            continue
        if not same_site(normalized, root_url) or not is_html_candidate(normalized):
            continue
        seen.add(normalized)
        links.append(normalized)
    return links


def mixed_content(soup: BeautifulSoup, page_url: str) -> list[str]:
    """Explicit http:// subresources on an https page, in document order."""
    if not page_url.lower().startswith("https://"):
        return []
    candidates = [_attr_to_str(tag.get(attr)) for name, attr in SUBRESOURCE_ATTRS
                  for tag in soup.find_all(name, attrs={attr: True})]
    for link in soup.find_all("link", href=True):
        rels = {r.lower() for r in (link.get("rel") or [])}
        if rels & LOADED_LINK_RELS:
            candidates.append(_attr_to_str(link.get("href")))
    found: list[str] = []
    for value in candidates:
        value = (value or "").strip()
        if value.lower().startswith("http://") and value not in found:
            found.append(value)
    return found


def skipped_heading_levels(soup: BeautifulSoup) -> list[str]:
    """Jumps such as "h1>h3" where a heading goes deeper by more than one level."""
    skipped: list[str] = []
    previous = 0
    for tag in soup.find_all(HEADING_TAG):
        level = int(tag.name[1])
        if previous and level > previous + 1:
            jump = f"h{previous}>h{level}"
            if jump not in skipped:
                skipped.append(jump)
        previous = level
    return skipped


def _has_meta_prefix(soup: BeautifulSoup, prefix: str) -> bool:
    pattern = re.compile(f"^{re.escape(prefix)}", re.I)
    return bool(soup.find("meta", attrs={"property": pattern}) or soup.find("meta", attrs={"name": pattern}))


def failed_page(url: str, status_code: int | None, error: str | None, final_url: str | None = None,
                load_time_ms: int | None = None) -> PageRecord:
    return PageRecord(
        url=url,
        status_code=status_code,
        error=error or (f"http_{status_code}" if status_code else "fetch_error"),
        final_url=final_url,
        load_time_ms=load_time_ms,
    )


def analyze(
    url: str,
    initial_html: str,
    rendered_html: str,
    status_code: int | None,
    *,
    root_url: str | None = None,
    final_url: str | None = None,
    error: str | None = None,
    load_time_ms: int | None = None,
    vitals: dict | None = None,
    recommend_alt: bool = False,
    headers: dict[str, str] | None = None,
    redirect_count: int = 0,
    timed_out: bool = False,
) -> PageRecord:
    if error or status_code is None or not 200 <= status_code < 300:
        return failed_page(url, status_code, error, final_url=final_url, load_time_ms=load_time_ms)

    # Everything below reads the rendered DOM so script-built pages are judged as users see them.
    soup = BeautifulSoup(rendered_html or "", "html.parser")

    title = soup.title.get_text(" ", strip=True) if soup.title else ""
    meta_description = _meta_content(soup, "description")
    h1_texts = tuple(h.get_text(" ", strip=True) for h in soup.find_all("h1"))
    h2_texts = [h.get_text(" ", strip=True) for h in soup.find_all("h2")]

    robots_meta = " ".join(_meta_content(soup, n) for n in ("robots", "googlebot")).lower()
    canonical_tag = soup.find("link", rel="canonical", href=True)
    canonical = (_attr_to_str(canonical_tag.get("href")) or "").strip() if canonical_tag else None

    text = visible_text(soup)
    a11y = audit_a11y(soup, recommend_alt=recommend_alt)
    schema = analyze_schema(soup)
    readability = llm_readability.assess(initial_html, rendered_html)
    keywords = keyword_processor.extract_keywords(text, [title, meta_description, *h1_texts, *h2_texts])

    base = final_url or url
    links = extract_links(soup, base, root_url or base)

    logger.debug("Analyzed %s: %d words, %d links", url, len(text.split()), len(links))
    return PageRecord(
        url=url,
        status_code=status_code,
        final_url=final_url,
        title=title,
        meta_description=meta_description,
        h1_count=len(h1_texts),
        h2_count=len(h2_texts),
        h1_texts=h1_texts,
        word_count=len(text.split()) if text else 0,
        image_count=a11y["image_count"],
        images_without_alt=a11y["images_without_alt"],
        image_findings=a11y["image_findings"],
        empty_interactives=a11y["empty_interactives"],
        has_lang=a11y["has_lang"],
        has_viewport=bool(soup.find("meta", attrs={"name": re.compile("^viewport$", re.I)})),
        canonical=canonical or None,
        has_noindex="noindex" in robots_meta or "none" in [d.strip() for d in robots_meta.split(",")],
        has_nofollow="nofollow" in robots_meta,
        has_schema_markup=schema.has_schema,
        schema_entities=schema.schema_types,
        schema=schema,
        initial_html_length=readability.initial_html_length,
        rendered_html_length=readability.rendered_html_length,
        llm_readability=readability,
        keywords=tuple(keywords),
        internal_links=tuple(links),
        load_time_ms=load_time_ms,
        performance_metrics=dict(vitals) if vitals else None,
        render_timed_out=timed_out,
        redirect_count=redirect_count,
        response_headers=dict(headers) if headers is not None else None,
        mixed_content=tuple(mixed_content(soup, base)),
        skipped_heading_levels=tuple(skipped_heading_levels(soup)),
        has_open_graph=_has_meta_prefix(soup, "og:"),
        has_twitter_card=_has_meta_prefix(soup, "twitter:"),
        lazy_image_count=sum(1 for img in soup.find_all("img") if str(img.get("loading") or "").lower() == "lazy"),
        internal_link_count=len(links),
        platform=detect_platform(rendered_html),
    )
