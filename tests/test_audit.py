import json

import pytest

import audit
import config
from audit import TIER_LIMITS, resolve_options, run_audit, save_json
from conftest import FakePage, page_html
from errors import AddOnFailure, FatalInputError
from models import AddOns, AuditOptions, PerformanceMetrics, PerformanceReport
from scoring import count_by_severity

ROOT = "https://example.com/"
SITEMAP = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    "<url><loc>https://example.com/</loc></url><url><loc>https://example.com/a</loc></url>"
    "</urlset>"
)


def _pages():
    return {
        ROOT: page_html(links=["/a", "/b", "/broken"]),
        "https://example.com/a": page_html(title="Compost guide for beginners and experts", links=["/"]),
        "https://example.com/b": page_html(title="Pruning shears and hand tools for gardeners"),
        "https://example.com/robots.txt": FakePage(
            html="User-agent: *\nDisallow: /private\nSitemap: https://example.com/sitemap.xml\n",
            content_type="text/plain",
        ),
        "https://example.com/sitemap.xml": FakePage(html=SITEMAP, content_type="application/xml"),
        "https://rival.com/": page_html(title="Greenhouse kits for small yards",
                                        description="Raised beds and greenhouse kits"),
    }


def _options(**add_ons):
    return AuditOptions(tier="starter", max_pages=4, add_ons=AddOns(**add_ons))


def _audit(site, options=None, **kwargs):
    return run_audit("https://Example.com", options or _options(), renderer=site, file_renderer=site, **kwargs)


class _PageSpeed:
    def __init__(self, report=None, error=None):
        self.report = report
        self.error = error
        self.urls = []

    def fetch(self, url):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.report


def test_full_audit(make_site):
    site = make_site(_pages())

    result = _audit(site)

    s = result.summary
    assert result.url == ROOT
    assert (s.total_pages, s.total_pages_crawled, s.error_pages) == (4, 3, 1)
    assert {p.url for p in result.pages} == {ROOT, "https://example.com/a", "https://example.com/b",
                                             "https://example.com/broken"}
    assert result.site_wide.broken_pages == ("https://example.com/broken",)
    assert result.site_wide.robots_txt_reachable and result.site_wide.sitemap_reachable
    assert result.raw["site_files"]["sitemap_url_count"] == 2
    assert any(e.source == ROOT and e.target == "https://example.com/a" for e in result.edges)
    assert 0 < len(s.extracted_keywords) <= TIER_LIMITS["starter"].keywords
    assert result.competitor_analysis is None
    assert result.performance is None
    diagnostics = result.crawl_diagnostics
    assert (diagnostics.pages_found, diagnostics.pages_successful, diagnostics.pages_failed) == (4, 3, 1)
    assert diagnostics.status == "partial"
    assert diagnostics.platform == "custom"
    assert result.to_dict()["crawl_diagnostics"]["status"] == "partial"


def test_summary_counts_match_issue_arrays(make_site):
    result = _audit(make_site(_pages()))

    counts = count_by_severity(result.all_issues())
    s = result.summary
    assert (s.high_severity_issues, s.medium_severity_issues, s.low_severity_issues) == \
        (counts["High"], counts["Medium"], counts["Low"])
    messages = [i.message for i in result.technical_issues]
    assert "Broken pages detected" in messages
    assert "Missing robots.txt" not in messages


def test_scores_and_qa(make_site):
    result = _audit(make_site(_pages()))

    s = result.summary
    for value in (s.overall_score, s.technical_score, s.on_page_score, s.content_score, s.accessibility_score):
        assert isinstance(value, int)
        assert 0 <= value <= 100
    assert s.technical_score < 100
    assert result.qa is not None
    assert result.qa.passed
    assert 1 <= result.qa.attempts <= config.QA_MAX_ATTEMPTS


def test_result_is_json_serializable(make_site, tmp_path):
    result = _audit(make_site(_pages()))
    json.dumps(result.to_dict())

    out = tmp_path / "audit.json"
    save_json(result, str(out))
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["schema_version"] == audit.SCHEMA_VERSION
    assert payload["url"] == ROOT
    assert payload["raw"]["options"]["tier"] == "starter"
    assert payload["qa"]["passed"] is True


def test_invalid_start_url(make_site):
    with pytest.raises(FatalInputError) as exc:
        run_audit("ftp://example.com/", renderer=make_site({}))
    assert exc.value.reason == "invalid_url"


def test_no_fetchable_pages(make_site):
    site = make_site({ROOT: FakePage(error="timeout")})
    with pytest.raises(FatalInputError) as exc:
        _audit(site)
    assert exc.value.reason == "no_pages_fetched"


def test_schema_issues_depend_on_tier(make_site):
    starter = _audit(make_site(_pages()))
    assert not any("schema" in i.message.lower() for i in starter.technical_issues)

    deep = _audit(make_site(_pages()), _options(schema_deep_dive=True))
    assert any(i.message == "Missing schema markup" for i in deep.technical_issues)


def test_resolve_options_from_tier():
    options, keywords = resolve_options(AuditOptions(tier="Professional"))
    assert (options.tier, options.max_pages, options.max_depth, keywords) == ("professional", 50, 5, 15)
    assert options.workers == config.CRAWL_WORKERS


def test_resolve_options_add_ons_and_overrides():
    options, keywords = resolve_options(AuditOptions(
        tier="standard",
        max_pages=7,
        add_ons=AddOns(extra_crawl_depth=True, additional_keywords=5),
    ))
    assert (options.max_pages, options.max_depth, keywords) == (7, 4, 15)


def test_invalid_tier():
    with pytest.raises(FatalInputError) as exc:
        resolve_options(AuditOptions(tier="gold"))
    assert exc.value.reason == "invalid_tier"


def test_performance_add_on(make_site):
    report = PerformanceReport(url=ROOT, mobile=PerformanceMetrics(lcp=4800, fcp=900, cls=0.02, inp=80, ttfb=200),
                               desktop=PerformanceMetrics(lcp=1900))
    client = _PageSpeed(report)

    result = _audit(make_site(_pages()), _options(performance_metrics=True), pagespeed=client)

    assert client.urls == [ROOT]
    assert result.performance == report
    assert [i.message for i in result.performance_issues] == ["Slow Largest Contentful Paint"]
    assert result.performance_issues[0].affected_pages == (ROOT,)
    assert result.summary.high_severity_issues == count_by_severity(result.all_issues())["High"]


def test_failed_performance_add_on_is_recorded(make_site):
    client = _PageSpeed(error=AddOnFailure("performance_metrics", "PAGESPEED_INSIGHTS_API_KEY is not set"))

    result = _audit(make_site(_pages()), _options(performance_metrics=True), pagespeed=client)

    assert result.performance is None
    assert result.performance_issues == ()
    assert result.raw["add_on_errors"] == {"performance_metrics": "performance_metrics"}


def test_competitor_add_on(make_site):
    options = AuditOptions(tier="starter", max_pages=4, competitor_urls=("https://rival.com",),
                           add_ons=AddOns(competitor_analysis=True))

    result = _audit(make_site(_pages()), options)

    analysis = result.competitor_analysis
    assert analysis.competitor_urls == ("https://rival.com",)
    assert "greenhouse kits" in analysis.keyword_gaps
    assert set(analysis.unique_keywords) <= set(result.summary.extracted_keywords)


def test_competitor_add_on_without_urls(make_site):
    result = _audit(make_site(_pages()), _options(competitor_analysis=True))
    assert result.competitor_analysis is None
    assert result.raw["add_on_errors"]["competitor_analysis"] == "no_competitor_urls"


def test_cli_writes_json(make_site, monkeypatch, tmp_path, capsys):
    prepared = _audit(make_site(_pages()))
    seen = {}

    def fake_run_audit(url, options, renderer=None):
        seen["url"], seen["options"] = url, options
        return prepared

    monkeypatch.setattr(audit, "run_audit", fake_run_audit)
    monkeypatch.setattr(audit, "build_renderer", lambda name=None: object())
    out = tmp_path / "cli.json"

    code = audit.main(["https://example.com", "--tier", "agency", "--competitor", "https://rival.com",
                       "--extra-depth", "--out", str(out)])

    assert code == 0
    assert seen["url"] == "https://example.com"
    assert seen["options"].tier == "agency"
    assert seen["options"].competitor_urls == ("https://rival.com",)
    assert seen["options"].add_ons.extra_crawl_depth
    assert json.loads(out.read_text(encoding="utf-8"))["url"] == ROOT
    assert "overall" in capsys.readouterr().out


def test_cli_reports_fatal_errors(monkeypatch):
    def failing(url, options, renderer=None):
        raise FatalInputError("no_pages_fetched", url)

    monkeypatch.setattr(audit, "run_audit", failing)
    monkeypatch.setattr(audit, "build_renderer", lambda name=None: object())

    assert audit.main(["https://example.com"]) == 1


def test_malformed_links_do_not_abort_the_audit(make_site):
    site = make_site({
        ROOT: page_html(links=["http://[broken", "/a"]),
        "https://example.com/a": page_html(title="Compost guide for beginners and experts", links=["/"]),
    })

    result = _audit(site)

    assert {p.url for p in result.pages} == {ROOT, "https://example.com/a"}
    assert result.summary.error_pages == 0


def test_sitemap_orphans_are_reported(make_site):
    sitemap = SITEMAP.replace("</urlset>", "<url><loc>https://example.com/hidden</loc></url></urlset>")
    site = make_site({
        ROOT: page_html(links=["/a"]),
        "https://example.com/a": page_html(title="Compost guide for beginners and experts", links=["/"]),
        "https://example.com/sitemap.xml": FakePage(html=sitemap, content_type="application/xml"),
    })

    result = _audit(site, AuditOptions(tier="starter", max_pages=10))

    assert result.site_wide.orphan_pages == ("https://example.com/hidden",)
    orphan = next(i for i in result.on_page_issues if i.message == "Orphan pages detected")
    assert "https://example.com/hidden" in orphan.details
