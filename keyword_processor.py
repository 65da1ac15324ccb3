"""
keyword_processor.py - Keyword extraction, cleaning and gap analysis.

Keywords are lowercase single terms or 2-3 word phrases. Cleaning decodes
HTML entities, strips punctuation (hyphens survive) and rejects fragments
left behind by broken hyphenation.
"""

from __future__ import annotations

import html
import re
from collections import Counter
from typing import Iterable

STOP_WORDS = {
    "this", "that", "with", "from", "your", "their", "have", "been", "will",
    "would", "could", "should", "the", "a", "an", "and", "or", "but", "in",
    "on", "at", "to", "for", "of", "as", "is", "was", "are", "were", "be",
    "by", "it", "its", "they", "them", "we", "us", "you", "he", "she", "his",
    "her", "our", "my", "me", "i", "am", "has", "had", "do", "does", "did",
    "can", "may", "might", "must", "shall", "about", "into", "through",
    "over", "under", "again", "then", "once", "here", "there", "when", "where",
    "why", "how", "all", "each", "every", "both", "few", "more", "most", "other",
    "some", "such", "no", "nor", "not", "only", "own", "same", "so", "than",
    "too", "very", "just", "now", "what", "which", "who", "also", "any", "these",
    "those", "out", "up", "off", "if", "get", "got", "one", "new",
}

GENERIC_WORDS = {
    "free", "online", "best", "top", "use", "make", "find", "see",
    "page", "site", "web", "www", "com", "org", "net", "gov",
    "edu", "html", "http", "https", "click", "learn", "read", "view", "home",
    "main", "menu", "search", "contact", "privacy", "terms", "copyright",
    "reserved", "rights", "inc", "llc", "ltd", "corp", "company", "cookie",
    "cookies", "login", "sign", "skip", "content",
}

NONSENSE_PATTERNS = [
    re.compile(r"^[a-z]\s[a-z]$"),
    re.compile(r"^(click|tap|press|swipe)\s+(here|now|button)"),
    re.compile(r"^(loading|please|wait|error|success|failed)\b"),
    re.compile(r"^(yes|no|ok|cancel|submit|close|open)\b"),
    re.compile(r"\d{4,}"),
    re.compile(r"^[^a-z]*$"),
]

MIN_TERM_LENGTH = 3
MAX_WORD_LENGTH = 15
MAX_PHRASE_LENGTH = 60
DEFAULT_MIN_FREQUENCY = 2

_WORD_RE = re.compile(r"[a-z][a-z0-9]*(?:-[a-z0-9]+)*")


def clean_keyword(keyword: str) -> str:
    decoded = html.unescape(keyword or "")
    cleaned = decoded.lower().strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = re.sub(r"[^\w\s-]", "", cleaned)
    cleaned = re.sub(r"\s*-\s*", "-", cleaned)
    return cleaned.strip("- ")


def has_broken_hyphenation(keyword: str) -> bool:
    if "-" not in keyword:
        return False
    return any(0 < len(part) < MIN_TERM_LENGTH for part in keyword.split("-"))


def is_valid_keyword(keyword: str) -> bool:
    cleaned = clean_keyword(keyword)
    if len(cleaned) < MIN_TERM_LENGTH or len(cleaned) > MAX_PHRASE_LENGTH:
        return False
    if has_broken_hyphenation(cleaned):
        return False
    words = [w for w in re.split(r"[\s-]+", cleaned) if w]
    if not words:
        return False
    for word in words:
        # Long unhyphenated words are usually concatenation artifacts ("frontiersread").
        if len(word) > MAX_WORD_LENGTH:
            return False
    meaningful = [w for w in words if w not in STOP_WORDS and w not in GENERIC_WORDS]
    if not meaningful:
        return False
    if any(pattern.search(cleaned) for pattern in NONSENSE_PATTERNS):
        return False
    if len(set(words)) < len(words) * 0.7:
        return False
    return True


def deduplicate_keywords(keywords: Iterable[str]) -> list[str]:
    """Clean, validate and dedupe; of two overlapping phrases the longer one is kept."""
    result: list[str] = []
    for keyword in keywords:
        cleaned = clean_keyword(keyword)
        if not cleaned or not is_valid_keyword(cleaned) or cleaned in result:
            continue
        duplicate = False
        for existing in list(result):
            if existing in cleaned or cleaned in existing:
                if len(cleaned) > len(existing):
                    result.remove(existing)
                else:
                    duplicate = True
                    break
        if not duplicate:
            result.append(cleaned)
    return result


def tokenize(text: str) -> list[str]:
    return _WORD_RE.findall(clean_keyword(text))


def _is_content_term(token: str) -> bool:
    return (
        len(token) >= MIN_TERM_LENGTH
        and token not in STOP_WORDS
        and token not in GENERIC_WORDS
        and not has_broken_hyphenation(token)
        and not token.isdigit()
    )


def extract_phrases(text: str, max_words: int = 3) -> list[str]:
    """2..max_words word phrases that neither start nor end with a stop word."""
    tokens = tokenize(text)
    phrases: list[str] = []
    for size in range(2, max_words + 1):
        for start in range(len(tokens) - size + 1):
            window = tokens[start:start + size]
            if not (_is_content_term(window[0]) and _is_content_term(window[-1])):
                continue
            phrase = " ".join(window)
            if phrase not in phrases and is_valid_keyword(phrase):
                phrases.append(phrase)
    return phrases


def term_frequencies(text: str) -> Counter:
    return Counter(token for token in tokenize(text) if _is_content_term(token))


def extract_keywords(
    body_text: str,
    headline_texts: Iterable[str] = (),
    min_frequency: int = DEFAULT_MIN_FREQUENCY,
    limit: int = 25,
) -> list[str]:
    """
    Keywords for one document: phrases from headlines (title, description,
    headings) first, then body terms seen at least min_frequency times.
    """
    candidates: list[str] = []
    for text in headline_texts:
        candidates.extend(extract_phrases(text))
    counts = term_frequencies(body_text)
    for text in headline_texts:
        counts.update(term_frequencies(text))
    for term, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        if count < min_frequency:
            break
        candidates.append(term)
    return [kw for kw in _dedupe_exact(candidates) if is_valid_keyword(kw)][:limit]


def _dedupe_exact(keywords: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for keyword in keywords:
        cleaned = clean_keyword(keyword)
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            out.append(cleaned)
    return out


def rank_site_keywords(per_page_keywords: Iterable[Iterable[str]], limit: int) -> list[str]:
    """Merge page keyword lists, ranking by the number of pages using each keyword."""
    counts: Counter = Counter()
    first_seen: dict[str, int] = {}
    for keywords in per_page_keywords:
        for keyword in _dedupe_exact(keywords):
            counts[keyword] += 1
            first_seen.setdefault(keyword, len(first_seen))
    ranked = sorted(counts, key=lambda kw: (-counts[kw], first_seen[kw]))
    return deduplicate_keywords(ranked)[:limit] if limit > 0 else []


def keyword_gaps(own: Iterable[str], competitor: Iterable[str]) -> tuple[list[str], list[str], list[str]]:
    """
    Return (gaps, shared, unique) as exact set algebra over cleaned forms:
    gaps = competitor - own, shared = competitor & own, unique = own - competitor.
    """
    own_clean = _dedupe_exact(own)
    competitor_clean = _dedupe_exact(competitor)
    own_set = set(own_clean)
    competitor_set = set(competitor_clean)
    gaps = [kw for kw in competitor_clean if kw not in own_set]
    shared = [kw for kw in competitor_clean if kw in own_set]
    unique = [kw for kw in own_clean if kw not in competitor_set]
    return gaps, shared, unique


def is_garbage_keyword(keyword: str) -> bool:
    """Quality gate used when validating an already-built keyword list."""
    if keyword != keyword.strip() or not keyword.strip():
        return True
    if "\n" in keyword or "\r" in keyword:
        return True
    if re.fullmatch(r"[A-Za-z]{1,2}", keyword):
        return True
    return has_broken_hyphenation(keyword)
