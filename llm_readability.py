"""
llm_readability.py - How much of a page only exists after scripts run.

Readers that do not execute JavaScript (most LLM crawlers) see the initial
server HTML. Comparing its size with the rendered DOM tells how much content
they would miss.
"""

from __future__ import annotations

import math

from models import LlmReadability

HIGH_RENDERING_THRESHOLD = 100.0
MODERATE_RENDERING_THRESHOLD = 50.0


def readability_ratio(initial_length: int, rendered_length: int) -> tuple[float, float]:
    """Return (rendering_percentage, similarity) before clamping."""
    i = max(0, int(initial_length))
    r = max(0, int(rendered_length))
    if i == 0:
        # Nothing served up front: everything visible came from scripts.
        return (100.0, 0.0) if r > 0 else (0.0, 100.0)
    if r >= i:
        return (r - i) / i * 100, i / r * 100
    similarity = r / i * 100
    if similarity > 95:
        return 100 - similarity, similarity
    return (i - r) / i * 100, similarity


def clamp_percentage(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def from_lengths(initial_length: int, rendered_length: int) -> LlmReadability:
    raw_percentage, similarity = readability_ratio(initial_length, rendered_length)
    return LlmReadability(
        initial_html_length=initial_length,
        rendered_html_length=rendered_length,
        rendering_percentage=round(clamp_percentage(raw_percentage), 2),
        similarity=round(clamp_percentage(similarity), 2),
        raw_rendering_percentage=round(raw_percentage, 2),
    )


def assess(initial_html: str, rendered_html: str) -> LlmReadability:
    return from_lengths(len(initial_html or ""), len(rendered_html or ""))


def rendering_severity(readability: LlmReadability) -> str | None:
    raw = readability.raw_rendering_percentage
    if raw > HIGH_RENDERING_THRESHOLD:
        return "High"
    if raw > MODERATE_RENDERING_THRESHOLD:
        return "Low"
    return None
