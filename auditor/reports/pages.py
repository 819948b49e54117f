"""Per-page report content: one entry per analysed page plus an action plan.

Every :class:`PageAnalysis` of a run ends up here, joined with the crawl row
it was produced from, so quick wins, recommendations, impact and source
survive alongside the site-level aggregates.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from auditor.analysis.aggregator import score_band
from auditor.analysis.models import PageAnalysis, Priority
from auditor.analysis.parser import MARKER_ISSUES
from auditor.crawl.models import Indexability, PageRecord

_URL_SLUG_LIMIT = 50
_ACTION_GROUP_LIMIT = 10
_URLS_PER_ACTION = 3

TECHNICAL_KEYWORDS = (
    "meta", "title", "canonical", "redirect", "status", "indexable",
    "robots", "sitemap", "schema", "structured data", "alt text",
)

BAND_SUMMARIES: dict[str, str] = {
    "90-100": "Excellent. This page performs very well and needs minimal optimisation.",
    "80-89": "Good performance with room for minor improvements.",
    "70-79": "Decent performance, but several optimisation opportunities exist.",
    "60-69": "Below average. Significant improvements needed.",
    "<60": "Poor performance. This page needs immediate, comprehensive optimisation.",
}

PRIORITY_NOTES: dict[Priority, str] = {
    Priority.HIGH: "Optimise this page now; it likely carries traffic or business-critical content.",
    Priority.MEDIUM: "Optimise this page as part of the regular SEO maintenance cycle.",
    Priority.LOW: "Optimise this page once higher-priority pages are addressed.",
}


@dataclass
class ActionGroup:
    action: str
    urls: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.urls)


def url_slug(url: str) -> str:
    """Filesystem-safe, lower-cased fragment of *url* (at most 50 chars)."""
    text = re.sub(r"^https?://", "", url)
    text = re.sub(r"[^a-zA-Z0-9]+", "_", text).strip("_").lower()
    return text[:_URL_SLUG_LIMIT] or "page"


def page_filename(number: int, url: str) -> str:
    return f"page_{number:03d}_{url_slug(url)}.md"


def technical_details(record: PageRecord | None) -> dict[str, Any] | None:
    if record is None:
        return None
    return {
        "title": record.title,
        "meta_description": record.meta_description,
        "h1": record.h1,
        "word_count": record.word_count,
        "status_code": record.status_code,
        "indexability": record.indexability.value,
        "canonical_url": record.canonical_url,
        "inlinks": record.inlinks,
        "outlinks": record.outlinks,
        "last_modified": record.last_modified.isoformat() if record.last_modified else None,
    }


def page_entry(analysis: PageAnalysis, record: PageRecord | None) -> dict[str, Any]:
    """JSON-ready view of one analysed page and its crawl data."""
    return {
        "url": analysis.url,
        "score": analysis.score,
        "priority": analysis.priority.value,
        "estimated_impact": analysis.estimated_impact.value,
        "source": analysis.source.value,
        "issues": list(analysis.issues),
        "quick_wins": list(analysis.quick_wins),
        "recommendations": list(analysis.recommendations),
        "technical": technical_details(record),
    }


def _numbered(items: Sequence[str], empty: str) -> list[str]:
    if not items:
        return [empty]
    return [f"{n}. {item}" for n, item in enumerate(items, start=1)]


def render_page_markdown(number: int, analysis: PageAnalysis, record: PageRecord | None) -> str:
    lines = [
        f"# SEO analysis: page {number}",
        "",
        "## Page overview",
        "",
        f"- URL: {analysis.url}",
        f"- SEO score: {analysis.score}/100",
        f"- Priority: {analysis.priority.value}",
        f"- Estimated impact: {analysis.estimated_impact.value}",
        f"- Analysis source: {analysis.source.value}",
    ]

    if record is not None:
        indexability = (
            record.indexability.value
            if record.indexability is not Indexability.UNKNOWN
            else "Unknown"
        )
        lines += [
            "",
            "## Technical details",
            "",
            f"- Status code: {record.status_code if record.status_code is not None else 'Unknown'}",
            f"- Indexability: {indexability}",
            f"- Word count: {record.word_count}",
            f"- Inlinks / outlinks: {record.inlinks} / {record.outlinks}",
            f"- Canonical: {record.canonical_url or 'None'}",
            "",
            "## Meta information",
            "",
            f"- Title: {record.title or 'Missing'}",
            f"- Meta description: {record.meta_description or 'Missing'}",
            f"- H1: {record.h1 or 'Missing'}",
        ]

    lines += ["", "## Critical issues", ""]
    lines += _numbered(analysis.issues, "No critical issues identified.")
    lines += ["", "## Quick wins", ""]
    lines += _numbered(analysis.quick_wins, "No quick wins identified.")
    lines += ["", "## Recommendations", ""]
    lines += _numbered(analysis.recommendations, "No further recommendations.")
    lines += [
        "",
        "## Score assessment",
        "",
        BAND_SUMMARIES[score_band(analysis.score)],
        "",
        "## Action priority",
        "",
        PRIORITY_NOTES[analysis.priority],
    ]
    return "\n".join(lines) + "\n"


def is_technical_issue(issue: str) -> bool:
    text = issue.lower()
    return any(keyword in text for keyword in TECHNICAL_KEYWORDS)


def group_actions(analyses: Iterable[PageAnalysis]) -> dict[str, list[ActionGroup]]:
    """Group quick wins and issues across pages into ``quick_wins`` /
    ``technical`` / ``content`` buckets.

    Actions are matched case-insensitively and ordered by affected pages
    (ties by action text); each bucket keeps its ten largest groups.
    Fallback marker issues are left out.
    """
    buckets: dict[str, dict[str, ActionGroup]] = {"quick_wins": {}, "technical": {}, "content": {}}

    def _add(bucket: str, action: str, url: str) -> None:
        key = action.strip().lower()
        if not key or key in MARKER_ISSUES:
            return
        group = buckets[bucket].setdefault(key, ActionGroup(action=action.strip()))
        group.urls.append(url)

    for page in analyses:
        for win in page.quick_wins:
            _add("quick_wins", win, page.url)
        for issue in page.issues:
            _add("technical" if is_technical_issue(issue) else "content", issue, page.url)

    return {
        name: sorted(groups.values(), key=lambda g: (-g.count, g.action.lower()))[:_ACTION_GROUP_LIMIT]
        for name, groups in buckets.items()
    }


def _render_group(groups: Sequence[ActionGroup]) -> list[str]:
    if not groups:
        return ["No specific actions identified in this category."]
    lines: list[str] = []
    for group in groups:
        lines.append(f"- {group.action} ({group.count} pages affected)")
        lines += [f"  - {url}" for url in group.urls[:_URLS_PER_ACTION]]
        if group.count > _URLS_PER_ACTION:
            lines.append(f"  - ... and {group.count - _URLS_PER_ACTION} more")
    return lines


def render_action_plan(slug: str, analyses: Sequence[PageAnalysis]) -> str:
    groups = group_actions(analyses)
    priorities = Counter(page.priority for page in analyses)
    lines = [
        f"# Priority action plan: {slug}",
        "",
        f"{len(analyses)} page(s) analysed: "
        + ", ".join(f"{priorities[p]} {p.value.lower()}" for p in Priority)
        + " priority.",
        "",
        "## Quick wins",
        "",
        *_render_group(groups["quick_wins"]),
        "",
        "## Technical fixes",
        "",
        *_render_group(groups["technical"]),
        "",
        "## Content optimisation",
        "",
        *_render_group(groups["content"]),
    ]
    return "\n".join(lines) + "\n"


def records_by_url(records: Iterable[PageRecord]) -> Mapping[str, PageRecord]:
    lookup: dict[str, PageRecord] = {}
    for record in records:
        lookup.setdefault(record.url, record)
    return lookup
