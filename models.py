"""Data model shared by the crawler, analyzers, scorer and QA loop."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

CATEGORIES = ("Technical", "On-page", "Content", "Accessibility", "Performance")
SEVERITIES = ("High", "Medium", "Low")
TIERS = ("starter", "standard", "professional", "agency")


@dataclass(frozen=True)
class CrawlTarget:
    url: str
    depth: int
    discovered_from: str | None
    order: int


@dataclass(frozen=True)
class CrawlEdge:
    source: str
    target: str
    depth: int


@dataclass(frozen=True)
class LlmReadability:
    initial_html_length: int
    rendered_html_length: int
    rendering_percentage: float
    similarity: float
    raw_rendering_percentage: float


@dataclass(frozen=True)
class ImageFinding:
    src: str
    alt: str | None
    recommendation: str


@dataclass(frozen=True)
class SchemaAnalysis:
    has_schema: bool = False
    schema_types: tuple[str, ...] = ()
    has_identity_schema: bool = False
    identity_type: str | None = None
    missing_fields: tuple[str, ...] = ()
    invalid_json_ld_blocks: int = 0


@dataclass(frozen=True)
class PageRecord:
    url: str
    status_code: int | None
    error: str | None = None
    final_url: str | None = None
    title: str = ""
    meta_description: str = ""
    h1_count: int = 0
    h2_count: int = 0
    h1_texts: tuple[str, ...] = ()
    word_count: int = 0
    image_count: int = 0
    images_without_alt: int = 0
    image_findings: tuple[ImageFinding, ...] = ()
    empty_interactives: int = 0
    has_lang: bool = True
    has_viewport: bool = False
    canonical: str | None = None
    has_noindex: bool = False
    has_nofollow: bool = False
    has_schema_markup: bool = False
    schema_entities: tuple[str, ...] = ()
    schema: SchemaAnalysis | None = None
    initial_html_length: int = 0
    rendered_html_length: int = 0
    llm_readability: LlmReadability | None = None
    keywords: tuple[str, ...] = ()
    internal_links: tuple[str, ...] = ()
    load_time_ms: int | None = None
    performance_metrics: dict[str, Any] | None = None
    render_timed_out: bool = False
    redirect_count: int = 0
    # Lowercased subset of the served response headers; None when not recorded.
    response_headers: dict[str, str] | None = None
    mixed_content: tuple[str, ...] = ()
    skipped_heading_levels: tuple[str, ...] = ()
    has_open_graph: bool = True
    has_twitter_card: bool = True
    lazy_image_count: int = 0
    internal_link_count: int | None = None
    platform: str | None = None

    @property
    def uses_https(self) -> bool:
        return (self.final_url or self.url).lower().startswith("https://")

    @property
    def ok(self) -> bool:
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300

    @property
    def broken(self) -> bool:
        return self.error is not None or self.status_code is None or self.status_code >= 400

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Issue:
    category: str
    severity: str
    message: str
    details: str = ""
    affected_pages: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["affected_pages"] = list(self.affected_pages)
        return data


@dataclass(frozen=True)
class CategoryScores:
    overall: int
    technical: int
    on_page: int
    content: int
    accessibility: int


@dataclass(frozen=True)
class DuplicateGroup:
    value: str
    pages: tuple[str, ...]
    template_based: bool
    severity: str


@dataclass(frozen=True)
class SiteFiles:
    robots_txt_exists: bool = False
    robots_txt_reachable: bool = False
    sitemap_exists: bool = False
    sitemap_reachable: bool = False
    sitemap_url: str | None = None
    sitemap_url_count: int = 0
    sitemap_page_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class SiteWide:
    robots_txt_exists: bool
    robots_txt_reachable: bool
    sitemap_exists: bool
    sitemap_reachable: bool
    sitemap_url: str | None = None
    duplicate_titles: tuple[DuplicateGroup, ...] = ()
    duplicate_meta_descriptions: tuple[DuplicateGroup, ...] = ()
    pages_with_duplicate_titles: tuple[str, ...] = ()
    broken_pages: tuple[str, ...] = ()
    orphan_pages: tuple[str, ...] = ()


@dataclass(frozen=True)
class CrawlIssue:
    type: str
    severity: str         # "critical" | "warning" | "info"
    message: str
    affected_pages: tuple[str, ...] = ()


@dataclass(frozen=True)
class CrawlMetrics:
    time_to_crawl_ms: int
    pages_per_second: float
    average_load_time_ms: int
    queue_health: str     # "healthy" | "degraded" | "poor"
    disallowed_paths: tuple[str, ...] = ()
    pages_skipped: int = 0
    crawl_efficiency: int = 0


@dataclass(frozen=True)
class CrawlDiagnostics:
    status: str           # "success" | "partial" | "failed"
    pages_found: int
    pages_successful: int
    pages_failed: int
    platform: str
    issues: tuple[CrawlIssue, ...] = ()
    recommendations: tuple[str, ...] = ()
    metrics: CrawlMetrics | None = None


@dataclass(frozen=True)
class CompetitorSite:
    url: str
    pages_crawled: int
    keywords: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class CompetitorAnalysis:
    competitor_urls: tuple[str, ...]
    competitor_keywords: tuple[str, ...]
    keyword_gaps: tuple[str, ...]
    shared_keywords: tuple[str, ...]
    unique_keywords: tuple[str, ...]
    sites: tuple[CompetitorSite, ...] = ()


@dataclass(frozen=True)
class Opportunity:
    id: str
    title: str
    savings_ms: float
    score: float | None


@dataclass(frozen=True)
class PerformanceMetrics:
    lcp: float = 0.0
    fcp: float = 0.0
    cls: float = 0.0
    inp: float = 0.0
    ttfb: float = 0.0
    opportunities: tuple[Opportunity, ...] = ()


@dataclass(frozen=True)
class PerformanceReport:
    url: str
    mobile: PerformanceMetrics
    desktop: PerformanceMetrics


@dataclass(frozen=True)
class AddOns:
    performance_metrics: bool = False
    competitor_analysis: bool = False
    schema_deep_dive: bool = False
    extra_crawl_depth: bool = False
    expedited: bool = False
    alt_text_recommendations: bool = False
    additional_keywords: int = 0
    additional_competitors: int = 0


@dataclass(frozen=True)
class AuditOptions:
    max_pages: int | None = None
    max_depth: int | None = None
    tier: str = "standard"
    add_ons: AddOns = field(default_factory=AddOns)
    competitor_urls: tuple[str, ...] = ()
    workers: int | None = None
    crawl_timeout: float | None = None


@dataclass(frozen=True)
class Summary:
    total_pages: int
    total_pages_crawled: int
    error_pages: int
    overall_score: int
    technical_score: int
    on_page_score: int
    content_score: int
    accessibility_score: int
    high_severity_issues: int
    medium_severity_issues: int
    low_severity_issues: int
    extracted_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class QAIssue:
    category: str
    severity: str         # "critical" | "warning" | "info"
    message: str
    details: str = ""
    fixable: bool = False


@dataclass(frozen=True)
class QAReport:
    score: int
    passed: bool
    attempts: int
    critical_count: int
    warning_count: int
    issues: tuple[QAIssue, ...] = ()


@dataclass(frozen=True)
class AuditResult:
    url: str
    summary: Summary
    pages: tuple[PageRecord, ...]
    technical_issues: tuple[Issue, ...] = ()
    on_page_issues: tuple[Issue, ...] = ()
    content_issues: tuple[Issue, ...] = ()
    accessibility_issues: tuple[Issue, ...] = ()
    performance_issues: tuple[Issue, ...] = ()
    site_wide: SiteWide | None = None
    edges: tuple[CrawlEdge, ...] = ()
    competitor_analysis: CompetitorAnalysis | None = None
    performance: PerformanceReport | None = None
    crawl_diagnostics: CrawlDiagnostics | None = None
    qa: QAReport | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def all_issues(self) -> list[Issue]:
        return [
            *self.technical_issues,
            *self.on_page_issues,
            *self.content_issues,
            *self.accessibility_issues,
            *self.performance_issues,
        ]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
