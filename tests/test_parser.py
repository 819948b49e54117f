"""Tests for auditor.analysis.parser.

Covers the marker-delimited happy path, each fallback path on its own, and
the alignment rules (URL match first, then position).
"""

from __future__ import annotations

import pytest

from auditor.analysis.models import AnalysisSource, Impact, Priority
from auditor.analysis.parser import (
    LLM_UNAVAILABLE,
    PARSING_INCOMPLETE,
    ResponseParser,
    estimate_impact,
    fallback_analysis,
    fallback_score,
)
from auditor.crawl.models import PageRecord


# ---------------------------------------------------------------------------
# Fixtures / constants
# ---------------------------------------------------------------------------

_SINGLE = """\
URL: https://example.com/a
SEO SCORE: 72
CRITICAL ISSUES:
- Missing meta description
QUICK WINS:
- Add alt text
RECOMMENDATIONS:
- Expand content
PRIORITY: High
"""

_TWO_SECTIONS = """\
**URL:** https://example.com/b
**SEO SCORE:** 55/100
CRITICAL ISSUES:
1. Thin content
2. Missing H1
QUICK WINS:
None
RECOMMENDATIONS:
- Write more
PRIORITY: Low
---
URL: https://example.com/a
SEO SCORE: 90
CRITICAL ISSUES:
- None
QUICK WINS:
- Tweak title
RECOMMENDATIONS:
- Keep going
PRIORITY: medium priority
"""


def _page(url: str = "https://example.com/a", **kwargs) -> PageRecord:
    return PageRecord(url=url, **kwargs)


@pytest.fixture()
def parser() -> ResponseParser:
    return ResponseParser()


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestParse:
    def test_single_section(self, parser):
        [page] = parser.parse(_SINGLE, [_page()])
        assert page.score == 72
        assert page.priority is Priority.HIGH
        assert list(page.issues) == ["Missing meta description"]
        assert list(page.quick_wins) == ["Add alt text"]
        assert list(page.recommendations) == ["Expand content"]
        assert page.source is AnalysisSource.LLM
        assert page.url == "https://example.com/a"

    def test_sections_matched_by_url_not_position(self, parser):
        records = [_page("https://example.com/a"), _page("https://example.com/b")]
        first, second = parser.parse(_TWO_SECTIONS, records)
        assert first.url == "https://example.com/a"
        assert first.score == 90
        assert first.issues == ()
        assert first.priority is Priority.MEDIUM
        assert second.score == 55
        assert list(second.issues) == ["Thin content", "Missing H1"]
        assert second.quick_wins == ()
        assert second.priority is Priority.LOW

    def test_positional_fill_without_urls(self, parser):
        text = "SEO SCORE: 40\nPRIORITY: High\n---\nSEO SCORE: 80\nPRIORITY: Low"
        records = [_page("https://example.com/1"), _page("https://example.com/2")]
        first, second = parser.parse(text, records)
        assert (first.url, first.score) == ("https://example.com/1", 40)
        assert (second.url, second.score) == ("https://example.com/2", 80)

    def test_extra_sections_are_ignored(self, parser):
        text = _SINGLE + "---\nURL: https://other.test/\nSEO SCORE: 10\n"
        pages = parser.parse(text, [_page()])
        assert len(pages) == 1
        assert pages[0].score == 72

    def test_list_items_are_capped(self):
        parser = ResponseParser(max_list_items=2)
        text = "SEO SCORE: 50\nCRITICAL ISSUES:\n- a\n- b\n- c\n- d\nPRIORITY: Low"
        [page] = parser.parse(text, [_page()])
        assert list(page.issues) == ["a", "b"]

    def test_score_is_clamped(self, parser):
        [page] = parser.parse("SEO SCORE: 250\nPRIORITY: Low", [_page()])
        assert page.score == 100

    def test_unknown_priority_defaults_to_medium(self, parser):
        [page] = parser.parse("SEO SCORE: 50\nPRIORITY: urgent!!", [_page()])
        assert page.priority is Priority.MEDIUM


# ---------------------------------------------------------------------------
# Fallback paths
# ---------------------------------------------------------------------------

class TestFallbacks:
    def test_fallback_score_perfect_page_is_100(self):
        record = _page(
            title="Home",
            meta_description="Welcome",
            h1="Welcome home",
            word_count=800,
            status_code=200,
        )
        assert fallback_score(record) == 100

    def test_fallback_score_bare_page(self):
        assert fallback_score(_page()) == 50

    def test_missing_score_uses_fallback_score(self, parser):
        record = _page(title="Home", word_count=10)
        [page] = parser.parse("URL: https://example.com/a\nPRIORITY: High", [record])
        assert page.score == fallback_score(record)
        assert page.source is AnalysisSource.PARTIAL
        assert page.priority is Priority.HIGH

    def test_no_markers_gives_fallback_for_every_record(self, parser):
        records = [_page("https://example.com/1"), _page("https://example.com/2")]
        pages = parser.parse("I cannot help with that.", records)
        assert [p.url for p in pages] == ["https://example.com/1", "https://example.com/2"]
        assert all(p.source is AnalysisSource.FALLBACK for p in pages)
        assert all(PARSING_INCOMPLETE in p.issues for p in pages)

    def test_missing_section_falls_back_only_for_that_record(self, parser):
        records = [_page("https://example.com/a"), _page("https://example.com/z")]
        first, second = parser.parse(_SINGLE, records)
        assert first.source is AnalysisSource.LLM
        assert second.source is AnalysisSource.FALLBACK

    def test_section_that_fails_extraction_falls_back_alone(self, parser):
        raw = (
            "URL: https://example.com/1\nSEO SCORE: 81\nPRIORITY: Low\n---\n"
            f"URL: https://example.com/2\nSEO SCORE: {'9' * 400}\nPRIORITY: High\n---\n"
            "URL: https://example.com/3\nSEO SCORE: 64\nPRIORITY: Medium\n"
        )
        records = [_page(f"https://example.com/{i}") for i in (1, 2, 3)]
        first, broken, third = parser.parse(raw, records)

        assert (first.source, first.score) == (AnalysisSource.LLM, 81)
        assert (third.source, third.score) == (AnalysisSource.LLM, 64)
        assert broken.url == "https://example.com/2"
        assert broken.source is AnalysisSource.FALLBACK
        assert PARSING_INCOMPLETE in broken.issues

    def test_fallback_analysis_lists_rule_issues(self):
        record = _page(title="Home", word_count=100, status_code=404)
        page = fallback_analysis(record)
        assert "Missing meta description" in page.issues
        assert "Missing H1" in page.issues
        assert "Thin content" in page.issues
        assert "Non-200 status code" in page.issues
        assert page.issues[-1] == PARSING_INCOMPLETE
        assert page.priority is Priority.MEDIUM

    def test_degraded_fallback_uses_unavailable_marker(self):
        page = fallback_analysis(_page(), source=AnalysisSource.DEGRADED)
        assert page.issues[-1] == LLM_UNAVAILABLE
        assert page.is_fallback


class TestEstimateImpact:
    @pytest.mark.parametrize(
        ("score", "priority", "expected"),
        [
            (30, Priority.HIGH, Impact.HIGH),
            (70, Priority.HIGH, Impact.MEDIUM),
            (90, Priority.HIGH, Impact.LOW),
            (40, Priority.MEDIUM, Impact.HIGH),
            (40, Priority.LOW, Impact.MEDIUM),
        ],
    )
    def test_impact_bands(self, score, priority, expected):
        assert estimate_impact(score, priority) is expected


class TestHelpers:
    def test_has_markers(self):
        assert ResponseParser.has_markers("blah\nSEO SCORE: 10")
        assert not ResponseParser.has_markers("no structure here")
        assert not ResponseParser.has_markers("")

    def test_split_sections_drops_unlabelled_parts(self):
        text = "Here is the analysis\n---\nURL: x\n---\nthanks!"
        assert ResponseParser.split_sections(text) == ["URL: x"]
