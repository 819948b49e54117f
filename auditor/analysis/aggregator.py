"""Reduce per-page analyses into a :class:`SiteReport`.

Pure functions only: no I/O, no clock, no randomness.  Given the same input
list the report is identical, and the average, histogram and issue table do
not depend on input order.  Top / bottom page lists are stable by original
position when scores tie.
"""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from auditor.analysis.models import (
    AnalysisSource,
    IssueFrequency,
    PageAnalysis,
    PageScore,
    Priority,
    PriorityAction,
    SiteInsights,
    SiteReport,
)
from auditor.analysis.parser import MARKER_ISSUES
from auditor.crawl.models import PageRecord

SCORE_BANDS: list[tuple[str, int]] = [
    ("90-100", 90),
    ("80-89", 80),
    ("70-79", 70),
    ("60-69", 60),
    ("<60", 0),
]

ISSUE_ACTIONS: dict[str, str] = {
    "missing meta description": "Add compelling meta descriptions to all pages",
    "missing h1": "Add H1 tags to all pages",
    "missing title": "Write unique titles for every page",
    "duplicate title": "Create unique titles for each page",
    "thin content": "Expand content with valuable information",
    "broken internal links": "Fix all broken internal links",
    "missing alt text": "Add descriptive alt text to all images",
    "slow loading": "Optimize page loading speed",
    "missing structured data": "Implement relevant schema markup",
    "non-200 status code": "Fix or redirect URLs that do not return 200",
}

ISSUE_EFFORT: dict[str, str] = {
    "missing meta description": "Medium",
    "missing h1": "Low",
    "missing title": "Medium",
    "duplicate title": "Medium",
    "thin content": "High",
    "broken internal links": "Low",
    "missing alt text": "Medium",
    "slow loading": "High",
    "missing structured data": "High",
    "non-200 status code": "Low",
}

_THIN_CONTENT_WORDS = 300


def action_for_issue(issue: str) -> str:
    return ISSUE_ACTIONS.get(issue, f"Address: {issue}")


def score_band(score: int) -> str:
    for label, floor in SCORE_BANDS:
        if score >= floor:
            return label
    return SCORE_BANDS[-1][0]


def _percent(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def _page_score(page: PageAnalysis) -> PageScore:
    return PageScore(url=page.url, score=page.score, priority=page.priority, issues=page.issues[:3])


class Aggregator:
    """Build site-level summaries from :class:`PageAnalysis` lists.

    Args:
        top_n: Size of the best / worst page lists.
        issue_top_k: Rows kept in the common-issue table.
        action_count: Priority actions derived from the most common issues.
    """

    def __init__(self, top_n: int = 5, issue_top_k: int = 10, action_count: int = 5) -> None:
        self.top_n = top_n
        self.issue_top_k = issue_top_k
        self.action_count = action_count

    def aggregate(
        self,
        analyses: Sequence[PageAnalysis],
        insights: SiteInsights | None = None,
    ) -> SiteReport:
        """Reduce *analyses* into a report.  Empty input yields a zeroed report."""
        pages = list(analyses)
        total = len(pages)

        scores = [p.score for p in pages if p.score is not None]
        average = round(sum(scores) / len(scores), 1) if scores else 0.0

        priority_counts = {p.value: 0 for p in Priority}
        for page in pages:
            priority_counts[page.priority.value] += 1

        distribution = {label: 0 for label, _ in SCORE_BANDS}
        for score in scores:
            distribution[score_band(score)] += 1

        scored = [p for p in pages if p.score is not None]
        # sorted() is stable, so ties keep their original position.
        top_pages = [_page_score(p) for p in sorted(scored, key=lambda p: -p.score)[: self.top_n]]
        bottom_pages = [_page_score(p) for p in sorted(scored, key=lambda p: p.score)[: self.top_n]]

        common_issues = self.issue_frequency(pages)
        degraded = sum(
            1 for p in pages if p.source in (AnalysisSource.FALLBACK, AnalysisSource.DEGRADED)
        )

        return SiteReport(
            total_pages=total,
            average_score=average,
            priority_counts=priority_counts,
            score_distribution=distribution,
            top_pages=top_pages,
            bottom_pages=bottom_pages,
            common_issues=common_issues,
            priority_actions=self.priority_actions(common_issues),
            degraded_pages=degraded,
            insights=insights,
        )

    def issue_frequency(self, pages: Sequence[PageAnalysis]) -> list[IssueFrequency]:
        """Count pages per normalised issue, most frequent first.

        Each issue counts once per page.  Ties are ordered by issue text so
        the table does not depend on input order.
        """
        counts: Counter[str] = Counter()
        for page in pages:
            counts.update({issue.lower().strip() for issue in page.issues if issue.strip()})

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [
            IssueFrequency(issue=issue, affected_pages=count, percentage=_percent(count, len(pages)))
            for issue, count in ranked[: self.issue_top_k]
        ]

    def priority_actions(self, common_issues: Sequence[IssueFrequency]) -> list[PriorityAction]:
        """Map the most frequent real issues to concrete actions."""
        actionable = [i for i in common_issues if i.issue not in MARKER_ISSUES]
        actions: list[PriorityAction] = []
        for rank, item in enumerate(actionable[: self.action_count], start=1):
            if item.percentage > 50:
                impact = "High"
            elif item.percentage > 25:
                impact = "Medium"
            else:
                impact = "Low"
            actions.append(
                PriorityAction(
                    rank=rank,
                    action=action_for_issue(item.issue),
                    impact=impact,
                    effort=ISSUE_EFFORT.get(item.issue, "Medium"),
                    affected_pages=item.affected_pages,
                )
            )
        return actions


def build_insights(records: Sequence[PageRecord]) -> SiteInsights:
    """Technical and content statistics straight from the crawl rows."""
    total = len(records)
    indexability: Counter[str] = Counter()
    status_codes: Counter[str] = Counter()
    titles: Counter[str] = Counter()
    https_pages = canonical_mismatches = thin = 0
    words = with_title = with_meta = with_h1 = 0

    for record in records:
        indexability[record.indexability.value] += 1
        status_codes[str(record.status_code) if record.status_code is not None else "Unknown"] += 1
        if record.url.startswith("https://"):
            https_pages += 1
        if record.canonical_url and record.canonical_url != record.url:
            canonical_mismatches += 1
        words += record.word_count
        if record.word_count < _THIN_CONTENT_WORDS:
            thin += 1
        if record.title:
            with_title += 1
            titles[record.title.lower()] += 1
        if record.meta_description:
            with_meta += 1
        if record.h1:
            with_h1 += 1

    return SiteInsights(
        analyzed_pages=total,
        indexability=dict(sorted(indexability.items())),
        status_codes=dict(sorted(status_codes.items())),
        https_pages=https_pages,
        canonical_mismatches=canonical_mismatches,
        average_word_count=round(words / total) if total else 0,
        title_coverage=_percent(with_title, total),
        meta_description_coverage=_percent(with_meta, total),
        h1_coverage=_percent(with_h1, total),
        duplicate_titles=sum(1 for count in titles.values() if count > 1),
        thin_content_pages=thin,
    )
