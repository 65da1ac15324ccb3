"""
web_vitals.py - Lab Core Web Vitals read from a live Playwright page.

Usage:
    # Inside a Playwright page session, after navigation
    vitals = measure_vitals(page)
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# Buffered observers replay entries recorded before the snippet was injected,
# so it can run after page.goto() has returned.
VITALS_SNIPPET = r"""
(observeMs) => {
    return new Promise((resolve) => {
        const metrics = {lcp: 0, cls: 0, fcp: 0, ttfb: 0};

        const nav = performance.getEntriesByType('navigation')[0];
        if (nav) {
            metrics.ttfb = nav.responseStart;
        }
        for (const paint of performance.getEntriesByType('paint')) {
            if (paint.name === 'first-contentful-paint') {
                metrics.fcp = paint.startTime;
            }
        }

        try {
            new PerformanceObserver((list) => {
                const entries = list.getEntries();
                const last = entries[entries.length - 1];
                metrics.lcp = last.renderTime || last.loadTime || last.startTime;
            }).observe({type: 'largest-contentful-paint', buffered: true});
        } catch (e) {}

        try {
            new PerformanceObserver((list) => {
                for (const entry of list.getEntries()) {
                    if (!entry.hadRecentInput) {
                        metrics.cls += entry.value;
                    }
                }
            }).observe({type: 'layout-shift', buffered: true});
        } catch (e) {}

        setTimeout(() => resolve(metrics), observeMs);
    });
}
"""

VITAL_KEYS = ("lcp", "cls", "fcp", "ttfb")


def measure_vitals(page, observe_ms: int = 500) -> dict | None:
    """
    Returns {"lcp", "cls", "fcp", "ttfb"} (ms, CLS unitless) or None when the
    page cannot be evaluated. Blocks for observe_ms.
    """
    from playwright.sync_api import Error as PlaywrightError

    try:
        metrics = page.evaluate(VITALS_SNIPPET, observe_ms)
    except PlaywrightError as exc:
        logger.debug("Web vitals unavailable: %s", exc)
        return None
    if not isinstance(metrics, dict):
        return None
    return {key: round(float(metrics.get(key) or 0), 4) for key in VITAL_KEYS}
