"""
url_normalizer.py - Canonical URL forms used as the crawl dedup key.

Usage:
    normalize_url("HTTPS://Example.com:443/about/#team")  # "https://example.com/about"
    normalize_url("../pricing", base_url="https://example.com/docs/intro")
"""

from __future__ import annotations

import os
from urllib.parse import urljoin, urlparse, urlunparse

ASSET_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".avif",
    ".css", ".js", ".mjs", ".map",
    ".pdf", ".zip", ".rar", ".7z", ".gz",
    ".mp4", ".mp3", ".wav", ".avi", ".mov", ".wmv", ".webm",
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
    ".xml", ".json", ".txt", ".csv", ".rss",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".apk", ".exe", ".dmg", ".pkg",
}
SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")


def normalize_url(url: str, base_url: str | None = None) -> str:
    """
    Return the canonical form of url, or "" when it is not an http(s) URL.

    Scheme and host are lowercased, default ports and the fragment are dropped,
    an empty path becomes "/" and any other trailing slash is removed. The
    query string is kept as-is. normalize_url(normalize_url(u)) == normalize_url(u).
    """
    if not url:
        return ""
    url = url.strip()
    if url.lower().startswith(SKIPPED_SCHEMES):
        return ""
    try:
        joined = urljoin(base_url, url) if base_url else url
        parsed = urlparse(joined)
    except ValueError:
        # Unbalanced IPv6 brackets and similar malformed hosts.
        return ""
    scheme = (parsed.scheme or "").lower()
    if scheme not in ("http", "https"):
        return ""
    netloc = (parsed.netloc or "").lower()
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
    if not netloc:
        return ""
    if scheme == "http" and netloc.endswith(":80"):
        netloc = netloc[:-3]
    if scheme == "https" and netloc.endswith(":443"):
        netloc = netloc[:-4]
    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"
    return urlunparse((scheme, netloc, path, "", parsed.query, ""))


def site_root(url: str) -> str:
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def host_key(value: str) -> str:
    host = (value or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def same_site(url: str, root: str) -> bool:
    """www and non-www variants of the same host count as one site."""
    if not url or not root:
        return False
    try:
        return host_key(urlparse(url).netloc) == host_key(urlparse(root).netloc)
    except ValueError:
        return False


def is_html_candidate(url: str) -> bool:
    path = (urlparse(url).path or "").lower()
    ext = os.path.splitext(path)[1]
    # Unknown extensions such as "/v1.2" are treated as pages.
    return ext not in ASSET_EXTENSIONS
