import threading

import pytest
import requests

import performance_metrics
from errors import AddOnFailure
from models import Opportunity, PerformanceMetrics, PerformanceReport
from performance_metrics import (
    PAGESPEED_ENDPOINT,
    PageSpeedClient,
    RateLimiter,
    parse_metrics,
    performance_issues,
)

API_KEY = "k" * 39


def _payload(lcp=2100.0, cls=0.05, inp=150.0, fcp=1200.0, ttfb=300.0):
    return {
        "lighthouseResult": {
            "audits": {
                "largest-contentful-paint": {"numericValue": lcp},
                "first-contentful-paint": {"numericValue": fcp},
                "cumulative-layout-shift": {"numericValue": cls},
                "interaction-to-next-paint": {"numericValue": inp},
                "server-response-time": {"numericValue": ttfb},
                "unused-javascript": {"score": 0.4, "title": "Reduce unused JavaScript",
                                      "details": {"overallSavingsMs": 900}},
                "render-blocking-resources": {"score": 0.9, "title": "Eliminate render-blocking resources",
                                              "details": {"overallSavingsMs": 300}},
                "uses-text-compression": {"score": 1, "title": "Enable text compression"},
                "offscreen-images": {"score": 0.5, "title": "Defer offscreen images", "details": {}},
            }
        }
    }


class _Resp:
    def __init__(self, payload, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class _Session:
    def __init__(self, by_strategy):
        self.by_strategy = by_strategy
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        with self._lock:
            self.calls.append((url, dict(params)))
        result = self.by_strategy[params["strategy"]]
        if isinstance(result, Exception):
            raise result
        return result


def _client(session):
    return PageSpeedClient(api_key=API_KEY, session=session, limiter=RateLimiter(0))


def test_parse_metrics_reads_vitals_and_opportunities():
    metrics = parse_metrics(_payload())
    assert (metrics.lcp, metrics.fcp, metrics.cls, metrics.inp, metrics.ttfb) == (2100.0, 1200.0, 0.05, 150.0, 300.0)
    assert [o.id for o in metrics.opportunities] == ["unused-javascript", "render-blocking-resources",
                                                    "offscreen-images"]
    assert metrics.opportunities[0].savings_ms == 900


def test_parse_metrics_caps_unrealistic_values():
    metrics = parse_metrics(_payload(lcp=95000, cls=3.0))
    assert metrics.lcp == 30000.0
    assert metrics.cls == 1.0


def test_parse_metrics_requires_lighthouse_result():
    with pytest.raises(ValueError):
        parse_metrics({"error": {"code": 400}})


def test_fetch_both_strategies():
    session = _Session({"mobile": _Resp(_payload(lcp=3000)), "desktop": _Resp(_payload(lcp=1500))})

    report = _client(session).fetch("https://example.com/")

    assert report.mobile.lcp == 3000
    assert report.desktop.lcp == 1500
    assert {params["strategy"] for _, params in session.calls} == {"mobile", "desktop"}
    url, params = session.calls[0]
    assert url == PAGESPEED_ENDPOINT
    assert params["url"] == "https://example.com/"
    assert params["key"] == API_KEY
    assert params["category"] == "PERFORMANCE"


def test_one_failed_strategy_is_zeroed():
    session = _Session({"mobile": requests.Timeout("slow"), "desktop": _Resp(_payload())})

    report = _client(session).fetch("https://example.com/")

    assert report.mobile == PerformanceMetrics()
    assert report.desktop.lcp == 2100.0


def test_both_strategies_failing_raises():
    session = _Session({"mobile": _Resp({}, status=500), "desktop": _Resp({"no": "data"})})
    with pytest.raises(AddOnFailure) as exc:
        _client(session).fetch("https://example.com/")
    assert exc.value.reason == "performance_metrics"


@pytest.mark.parametrize("key", ["", "short-key"])
def test_missing_or_bad_api_key(key):
    session = _Session({})
    with pytest.raises(AddOnFailure):
        PageSpeedClient(api_key=key, session=session, limiter=RateLimiter(0)).fetch("https://example.com/")
    assert session.calls == []


def test_rate_limiter_spaces_calls(monkeypatch):
    clock = {"now": 100.0}
    sleeps = []
    monkeypatch.setattr(performance_metrics.time, "monotonic", lambda: clock["now"])
    monkeypatch.setattr(performance_metrics.time, "sleep", lambda s: sleeps.append(s))

    limiter = RateLimiter(1.5)
    limiter.wait()
    limiter.wait()
    limiter.wait()

    assert sleeps == [1.5, 3.0]


def test_performance_issues_thresholds():
    report = PerformanceReport(
        url="https://example.com/",
        mobile=PerformanceMetrics(lcp=4500, fcp=3200, cls=0.15, inp=150, ttfb=2000,
                                  opportunities=(Opportunity("unused-javascript", "Reduce unused JavaScript", 900, 0.4),
                                                 Opportunity("redirects", "Avoid redirects", 100, 0.5))),
        desktop=PerformanceMetrics(),
    )

    found = {(i.severity, i.message) for i in performance_issues(report)}

    assert ("High", "Slow Largest Contentful Paint") in found
    assert ("Medium", "High Cumulative Layout Shift") in found
    assert ("Medium", "Slow First Contentful Paint") in found
    assert ("Medium", "Slow Server Response Time") in found
    assert ("Low", "Optimization opportunity: Reduce unused JavaScript") in found
    assert not any("Interaction" in message for _, message in found)
    assert not any("redirects" in message.lower() for _, message in found)
    assert all(i.category == "Performance" for i in performance_issues(report))


def test_fast_page_has_no_performance_issues():
    report = PerformanceReport(url="https://example.com/", mobile=PerformanceMetrics(lcp=1200, fcp=800, cls=0.01,
                                                                                     inp=90, ttfb=200),
                               desktop=PerformanceMetrics())
    assert performance_issues(report) == []
