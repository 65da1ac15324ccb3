"""
performance_metrics.py - Core Web Vitals from the PageSpeed Insights v5 API.

Mobile and desktop are queried concurrently through one shared rate
limiter. A strategy that fails yields zeroed metrics; when both fail the
add-on raises AddOnFailure and the audit carries on without it.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import config
from errors import AddOnFailure
from models import Issue, Opportunity, PerformanceMetrics, PerformanceReport

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"
STRATEGIES = ("mobile", "desktop")
MIN_API_KEY_LENGTH = 20
MAX_OPPORTUNITIES = 10

METRIC_AUDITS = {
    "lcp": "largest-contentful-paint",
    "fcp": "first-contentful-paint",
    "cls": "cumulative-layout-shift",
    "inp": "interaction-to-next-paint",
    "ttfb": "server-response-time",
}
# Values above these are measurement artifacts, not real page behavior.
METRIC_CAPS = {"lcp": 30000.0, "fcp": 10000.0, "cls": 1.0, "inp": 2000.0, "ttfb": 5000.0}

OPPORTUNITY_AUDITS = (
    "render-blocking-resources",
    "unused-css-rules",
    "unused-javascript",
    "offscreen-images",
    "modern-image-formats",
    "uses-optimized-images",
    "uses-text-compression",
    "efficient-animated-content",
    "preload-lcp-image",
    "uses-responsive-images",
    "unminified-css",
    "unminified-javascript",
    "uses-long-cache-ttl",
    "total-byte-weight",
    "redirects",
)

# (metric, High above, Medium above, label, unit)
THRESHOLDS = (
    ("lcp", 4000.0, 2500.0, "Largest Contentful Paint", "ms"),
    ("cls", 0.25, 0.1, "Cumulative Layout Shift", ""),
    ("inp", 500.0, 200.0, "Interaction to Next Paint", "ms"),
    ("fcp", None, 3000.0, "First Contentful Paint", "ms"),
    ("ttfb", None, 1800.0, "Server Response Time", "ms"),
)


class RateLimiter:
    """Spaces calls at least min_interval seconds apart across threads."""

    def __init__(self, min_interval: float):
        self.min_interval = max(0.0, min_interval)
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)


def build_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=2,
        backoff_factor=2,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    return session


def _number(value: Any) -> float:
    return float(value) if isinstance(value, (int, float)) else 0.0


def parse_metrics(payload: dict) -> PerformanceMetrics:
    lighthouse = payload.get("lighthouseResult")
    if not isinstance(lighthouse, dict):
        raise ValueError("Missing lighthouseResult")
    audits = lighthouse.get("audits") or {}

    values = {}
    for name, audit_id in METRIC_AUDITS.items():
        value = _number((audits.get(audit_id) or {}).get("numericValue"))
        cap = METRIC_CAPS[name]
        if value > cap:
            logger.warning("Unrealistic %s value %s, capping at %s", name, value, cap)
            value = cap
        values[name] = value

    opportunities = []
    for audit_id in OPPORTUNITY_AUDITS:
        audit = audits.get(audit_id)
        if not audit or audit.get("score") is None or audit["score"] >= 1:
            continue
        details = audit.get("details") or {}
        savings = _number(details.get("overallSavingsMs"))
        score = _number(audit["score"])
        if savings > 0 or score < 0.75:
            opportunities.append(Opportunity(audit_id, audit.get("title") or audit_id, savings, score))
    opportunities.sort(key=lambda o: (-o.savings_ms, o.score or 0.0))

    return PerformanceMetrics(opportunities=tuple(opportunities[:MAX_OPPORTUNITIES]), **values)


class PageSpeedClient:
    def __init__(
        self,
        api_key: str | None = None,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        timeout: float = config.PAGESPEED_TIMEOUT,
    ):
        self.api_key = config.PAGESPEED_API_KEY if api_key is None else api_key
        self.session = session or build_session()
        self.limiter = limiter or RateLimiter(config.PAGESPEED_MIN_INTERVAL)
        self.timeout = timeout

    def fetch_strategy(self, url: str, strategy: str) -> PerformanceMetrics:
        self.limiter.wait()
        params = {"url": url, "key": self.api_key, "strategy": strategy, "category": "PERFORMANCE"}
        resp = self.session.get(PAGESPEED_ENDPOINT, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return parse_metrics(resp.json())

    def _try_strategy(self, url: str, strategy: str) -> PerformanceMetrics | None:
        try:
            return self.fetch_strategy(url, strategy)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("PageSpeed %s request failed for %s: %s", strategy, url, exc)
            return None

    def fetch(self, url: str) -> PerformanceReport:
        if not self.api_key:
            raise AddOnFailure("performance_metrics", "PAGESPEED_INSIGHTS_API_KEY is not set")
        if len(self.api_key) < MIN_API_KEY_LENGTH:
            raise AddOnFailure("performance_metrics", "PageSpeed API key looks invalid (too short)")

        logger.info("Fetching PageSpeed data for %s", url)
        with ThreadPoolExecutor(max_workers=len(STRATEGIES), thread_name_prefix="pagespeed") as pool:
            futures = {s: pool.submit(self._try_strategy, url, s) for s in STRATEGIES}
            results = {s: f.result() for s, f in futures.items()}

        if all(r is None for r in results.values()):
            raise AddOnFailure("performance_metrics", f"Both PageSpeed strategies failed for {url}")
        return PerformanceReport(
            url=url,
            mobile=results["mobile"] or PerformanceMetrics(),
            desktop=results["desktop"] or PerformanceMetrics(),
        )


def fetch_performance(url: str, client: PageSpeedClient | None = None) -> PerformanceReport:
    return (client or PageSpeedClient()).fetch(url)


def _format(value: float, unit: str) -> str:
    return f"{value:.0f}{unit}" if unit else f"{value:.3f}"


def performance_issues(report: PerformanceReport) -> list[Issue]:
    """Threshold issues from the mobile run, which is what search engines rank on."""
    metrics = report.mobile
    issues = []
    for name, high, medium, label, unit in THRESHOLDS:
        value = getattr(metrics, name)
        if high is not None and value > high:
            severity, limit = "High", high
        elif value > medium:
            severity, limit = "Medium", medium
        else:
            continue
        issues.append(Issue(
            "Performance",
            severity,
            f"Slow {label}" if unit else f"High {label}",
            f"Mobile {label} is {_format(value, unit)} (threshold: {_format(limit, unit)})",
            (report.url,),
        ))
    for opportunity in metrics.opportunities[:3]:
        if opportunity.savings_ms >= 500:
            issues.append(Issue(
                "Performance",
                "Low",
                f"Optimization opportunity: {opportunity.title}",
                f"Estimated savings: {opportunity.savings_ms:.0f}ms",
                (report.url,),
            ))
    return issues
