"""
accessibility_heuristic.py - Lightweight A11y Checks.

Usage:
    report = audit_a11y(soup, recommend_alt=True)
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from models import ImageFinding

GENERIC_ALT_WORDS = ("image", "photo", "picture", "img")
MAX_ALT_LENGTH = 125
MIN_ALT_LENGTH = 5


def _is_decorative(img) -> bool:
    if img.get("role") == "presentation" or img.get("aria-hidden") == "true":
        return True
    # Tracking pixels 1x1
    return img.get("width") == "1" or img.get("height") == "1"


def alt_recommendation(src: str, alt: str | None) -> str | None:
    if alt is None or not alt.strip():
        return f'Add a descriptive alt attribute. Example: <img src="{src}" alt="Description of what the image shows">'
    text = alt.strip()
    if len(text) < MIN_ALT_LENGTH:
        return f'Expand alt text to a short descriptive phrase. Current: "{text}".'
    if len(text) > MAX_ALT_LENGTH:
        return f"Shorten alt text to under {MAX_ALT_LENGTH} characters. Current: {len(text)} chars."
    if any(word in text.lower() for word in GENERIC_ALT_WORDS):
        return f'Replace generic alt text "{text}" with a specific description of what the image shows.'
    return None


def audit_a11y(soup: BeautifulSoup, recommend_alt: bool = False) -> dict:
    # 1. Images missing alt
    imgs = [img for img in soup.find_all("img") if not _is_decorative(img)]
    missing_alt = 0
    findings: list[ImageFinding] = []
    for img in imgs:
        alt = img.get("alt")
        src = str(img.get("src") or img.get("data-src") or "")
        if alt is None or not str(alt).strip():
            missing_alt += 1
        if recommend_alt:
            tip = alt_recommendation(src, alt)
            if tip:
                findings.append(ImageFinding(src=src, alt=alt, recommendation=tip))

    # 2. Empty Links / Buttons
    empty_interactives = 0
    for el in soup.find_all(["a", "button"]):
        text = el.get_text(strip=True)
        aria = el.get("aria-label") or el.get("title")
        labelled_img = el.find("img", alt=True)
        if not text and not aria and not (labelled_img and labelled_img.get("alt", "").strip()):
            empty_interactives += 1

    # 3. Document language
    html_tag = soup.find("html")
    has_lang = bool(html_tag and str(html_tag.get("lang") or "").strip())

    return {
        "image_count": len(imgs),
        "images_without_alt": missing_alt,
        "image_findings": tuple(findings),
        "empty_interactives": empty_interactives,
        "has_lang": has_lang,
    }
