"""
schema_analyzer.py - Schema.org detection (JSON-LD and microdata).

Usage:
    analysis = analyze_schema(soup)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterator

from bs4 import BeautifulSoup

from models import SchemaAnalysis

logger = logging.getLogger(__name__)

REQUIRED_IDENTITY_FIELDS = {
    "Organization": ("name", "url"),
    "Person": ("name",),
}
ORGANIZATION_SUBTYPES = {
    "Corporation", "LocalBusiness", "OnlineBusiness", "OnlineStore", "NGO",
    "EducationalOrganization", "ProfessionalService", "NewsMediaOrganization",
}
_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
_MICRODATA_RE = re.compile(r"schema\.org/([A-Za-z]+)", re.I)


def _identity_kind(schema_type: str) -> str | None:
    if schema_type in REQUIRED_IDENTITY_FIELDS:
        return schema_type
    if schema_type in ORGANIZATION_SUBTYPES:
        return "Organization"
    return None


def _types_of(node: dict) -> list[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [t for t in raw if isinstance(t, str)]
    return []


def _iter_nodes(data: Any) -> Iterator[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_nodes(item)
    elif isinstance(data, dict):
        if "@type" in data:
            yield data
        if "@graph" in data:
            yield from _iter_nodes(data["@graph"])


def _missing_fields(kind: str, node: dict) -> list[str]:
    missing = []
    for name in REQUIRED_IDENTITY_FIELDS[kind]:
        value = node.get(name)
        if name == "url" and not value:
            # sameAs is accepted as the organization's URL.
            same_as = node.get("sameAs")
            value = same_as[0] if isinstance(same_as, list) and same_as else same_as
        if not value:
            missing.append(name)
    return missing


def analyze_schema(soup: BeautifulSoup) -> SchemaAnalysis:
    types: list[str] = []
    invalid_blocks = 0
    identity: tuple[str, list[str]] | None = None

    def note_identity(kind: str, missing: list[str]) -> None:
        nonlocal identity
        if identity is None or len(missing) < len(identity[1]):
            identity = (kind, missing)

    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        text = _COMMENT_RE.sub("", script.string or script.get_text() or "").strip()
        if not text:
            continue
        try:
            data = json.loads(text)
        except ValueError:
            invalid_blocks += 1
            logger.debug("Skipping malformed JSON-LD block")
            continue
        for node in _iter_nodes(data):
            for schema_type in _types_of(node):
                if schema_type not in types:
                    types.append(schema_type)
                kind = _identity_kind(schema_type)
                if kind:
                    note_identity(kind, _missing_fields(kind, node))

    for el in soup.find_all(attrs={"itemtype": True}):
        for match in _MICRODATA_RE.finditer(str(el.get("itemtype") or "")):
            schema_type = match.group(1)
            if schema_type not in types:
                types.append(schema_type)
            kind = _identity_kind(schema_type)
            if kind:
                # Microdata properties are not validated field by field.
                note_identity(kind, [])

    return SchemaAnalysis(
        has_schema=bool(types),
        schema_types=tuple(types),
        has_identity_schema=identity is not None,
        identity_type=identity[0] if identity else None,
        missing_fields=tuple(identity[1]) if identity else (),
        invalid_json_ld_blocks=invalid_blocks,
    )
