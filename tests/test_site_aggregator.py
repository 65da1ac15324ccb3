from issue_policy import consolidate_issues
from models import PageRecord, SiteFiles
from site_aggregator import (
    aggregate,
    find_duplicate_titles,
    find_orphan_pages,
    is_template_group,
    sitewide_file_issues,
)

ALL_FILES = SiteFiles(robots_txt_exists=True, robots_txt_reachable=True,
                      sitemap_exists=True, sitemap_reachable=True, sitemap_url="https://example.com/sitemap.xml")


def _page(i, title, h1=1, h2=3, words=300, status=200, error=None):
    return PageRecord(url=f"https://example.com/p{i}", status_code=status, error=error, title=title,
                      h1_count=h1, h2_count=h2, word_count=words)


def test_large_structurally_similar_group_is_template_based():
    pages = [_page(i, "Shop | Brand", words=300 + 5 * i) for i in range(5)]
    pages += [_page(i, f"Unique title {i}") for i in range(5, 10)]

    groups = find_duplicate_titles(pages)

    assert len(groups) == 1
    assert groups[0].template_based
    assert groups[0].severity == "Low"
    assert len(groups[0].pages) == 5


def test_small_group_with_different_headings_is_genuine_duplicate():
    pages = [_page(0, "Contact us", h1=1), _page(1, "Contact us", h1=2)]
    pages += [_page(i, f"Unique title {i}") for i in range(2, 10)]

    groups = find_duplicate_titles(pages)

    assert len(groups) == 1
    assert not groups[0].template_based
    assert groups[0].severity == "Medium"


def test_template_needs_similar_word_counts_and_headings():
    similar = [_page(i, "Same", words=300) for i in range(4)]
    assert is_template_group(similar, 6)
    assert not is_template_group(similar, 10)
    uneven = similar[:3] + [_page(9, "Same", words=600)]
    assert not is_template_group(uneven, 4)
    mixed_h2 = similar[:3] + [_page(9, "Same", h2=1)]
    assert not is_template_group(mixed_h2, 4)


def test_titles_compare_case_and_whitespace_insensitively():
    pages = [_page(0, "Garden  Tools"), _page(1, "garden tools "), _page(2, "")]
    groups = find_duplicate_titles(pages)
    assert [g.pages for g in groups] == [("https://example.com/p0", "https://example.com/p1")]


def test_failed_pages_are_not_duplicate_candidates():
    pages = [_page(0, "Not found", status=404), _page(1, "Not found", status=404), _page(2, "Home")]
    assert find_duplicate_titles(pages) == ()


def test_aggregate_rollup_and_issues():
    pages = [
        _page(0, "Shop | Brand"),
        _page(1, "Shop | Brand", h1=2),
        _page(2, "About the brand"),
        _page(3, "", status=None, error="timeout"),
        _page(4, "Gone", status=404),
    ]

    site_wide, issues = aggregate(pages, ALL_FILES)

    assert site_wide.pages_with_duplicate_titles == ("https://example.com/p0", "https://example.com/p1")
    assert site_wide.broken_pages == ("https://example.com/p3", "https://example.com/p4")
    messages = {i.message: i for i in issues}
    assert messages['Duplicate page title: "Shop | Brand"'].severity == "Medium"
    broken = messages["Broken pages detected"]
    assert broken.severity == "High"
    assert broken.affected_pages == site_wide.broken_pages
    assert broken.details == "2 pages returned errors"


def test_duplicate_meta_descriptions():
    pages = [
        PageRecord(url="https://example.com/a", status_code=200, meta_description="Best garden tools."),
        PageRecord(url="https://example.com/b", status_code=200, meta_description="best garden tools."),
    ]
    site_wide, issues = aggregate(pages, ALL_FILES)
    assert len(site_wide.duplicate_meta_descriptions) == 1
    assert [i.message for i in issues] == ['Duplicate meta description: "Best garden tools."']
    assert issues[0].affected_pages == ("https://example.com/a", "https://example.com/b")


def test_each_duplicate_description_group_keeps_its_own_value():
    pages = [
        PageRecord(url="https://example.com/a", status_code=200, meta_description="Best garden tools."),
        PageRecord(url="https://example.com/b", status_code=200, meta_description="Best garden tools."),
        PageRecord(url="https://example.com/c", status_code=200, meta_description="Seeds and bulbs."),
        PageRecord(url="https://example.com/d", status_code=200, meta_description="Seeds and bulbs."),
    ]

    _, issues = aggregate(pages, ALL_FILES)
    merged = consolidate_issues(issues)

    by_message = {i.message: i.affected_pages for i in merged}
    assert by_message == {
        'Duplicate meta description: "Best garden tools."': ("https://example.com/a", "https://example.com/b"),
        'Duplicate meta description: "Seeds and bulbs."': ("https://example.com/c", "https://example.com/d"),
    }


def test_sitewide_file_issues():
    missing = sitewide_file_issues(SiteFiles())
    assert {(i.message, i.severity) for i in missing} == {
        ("Missing robots.txt", "Low"),
        ("Missing sitemap.xml", "Medium"),
    }
    assert all(i.affected_pages == () for i in missing)

    broken = sitewide_file_issues(SiteFiles(robots_txt_exists=True, sitemap_exists=True,
                                            sitemap_url="https://example.com/sitemap.xml"))
    assert {i.message for i in broken} == {"robots.txt unreachable", "Invalid sitemap.xml"}
    assert sitewide_file_issues(ALL_FILES) == []


def _linked(path, links=(), **fields):
    return PageRecord(url=f"https://example.com{path}", status_code=200,
                      internal_links=tuple(f"https://example.com{link}" for link in links), **fields)


def test_sitemap_pages_without_inbound_links_are_orphans():
    pages = [
        _linked("/", links=["/a", "/b"]),
        _linked("/a", links=["/"]),
        _linked("/b", final_url="https://example.com/b-new/"),
    ]
    sitemap = ("https://example.com/", "https://example.com/a", "https://example.com/b-new",
               "https://example.com/c", "https://example.com/d", "https://other.com/e")

    assert find_orphan_pages(pages, sitemap) == ("https://example.com/c", "https://example.com/d")

    files = SiteFiles(robots_txt_exists=True, robots_txt_reachable=True, sitemap_exists=True,
                      sitemap_reachable=True, sitemap_page_urls=sitemap)
    site_wide, issues = aggregate(pages, files)
    assert site_wide.orphan_pages == ("https://example.com/c", "https://example.com/d")
    orphan = next(i for i in issues if i.message == "Orphan pages detected")
    assert orphan.severity == "Medium"
    assert orphan.affected_pages == ()
    assert "2 sitemap pages are not linked" in orphan.details
    assert "https://example.com/c" in orphan.details


def test_orphans_are_not_judged_on_a_truncated_crawl():
    pages = [_linked("/", links=["/a"])]
    files = SiteFiles(sitemap_exists=True, sitemap_reachable=True,
                      sitemap_page_urls=("https://example.com/", "https://example.com/z"))

    site_wide, issues = aggregate(pages, files, crawl_complete=False)

    assert site_wide.orphan_pages == ()
    assert "Orphan pages detected" not in {i.message for i in issues}
    assert find_orphan_pages([], files.sitemap_page_urls) == ()
