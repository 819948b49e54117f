"""Prompt builders for batch analysis and site-wide synthesis."""

from __future__ import annotations

import re
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from auditor.analysis.models import Batch, SiteReport

ANALYSIS_SYSTEM_PROMPT = """\
You are an expert technical SEO analyst. You receive crawl data for a batch
of pages from one website. Analyse every page and answer with exactly one
section per page, in the same order as the input, separated by a line
containing only "---".

Use this format for every section and nothing else:

URL: <page url>
SEO SCORE: <integer 0-100>
CRITICAL ISSUES:
- <issue>
QUICK WINS:
- <quick win>
RECOMMENDATIONS:
- <recommendation>
PRIORITY: <High|Medium|Low>

Keep each list to at most five short items. Write "None" when a list is
empty. Use only standard ASCII characters."""

SYNTHESIS_SYSTEM_PROMPT = (
    "You are an expert SEO analyst. Based on all individual page analyses, "
    "provide a comprehensive site-wide SEO assessment. Use only standard ASCII "
    "characters in your response."
)

_SYNTHESIS_SECTIONS = (
    "Overall Site Health Summary",
    "Average SEO Score across all pages",
    "Common Issues Across Pages",
    "Technical SEO Analysis",
    "Content Quality Analysis",
    "Internal Linking Structure",
    "Mobile Optimization",
    "Site Performance Analysis",
    "Priority Recommendations (sorted by potential impact)",
    "Quick Wins (easy fixes that can have immediate impact)",
    "Long-term Strategy Recommendations",
)

_LEADING_SYMBOLS = re.compile(r"^[^\w\s#\-*\d]+", re.MULTILINE)
_NON_ASCII = re.compile(r"[^\x20-\x7E\n\r\t]")
_MULTI_SPACE = re.compile(r" {2,}")
_MULTI_NEWLINE = re.compile(r"\n{3,}")


def build_batch_messages(batch: Batch, slug: str, total: int) -> list[Any]:
    """System + user messages asking the model to analyse one batch."""
    # Built from the same per-record text the chunker budgeted for.
    payload = "[\n" + ",\n".join(record.payload_text() for record in batch.records) + "\n]"
    return [
        SystemMessage(content=ANALYSIS_SYSTEM_PROMPT),
        HumanMessage(
            content=(
                f"Here is chunk {batch.index + 1} of {total} for website: {slug}\n\n{payload}"
            )
        ),
    ]


def _report_digest(report: SiteReport) -> str:
    lines = [
        f"Pages analysed: {report.total_pages}",
        f"Average SEO score: {report.average_score}",
        "Priority counts: "
        + ", ".join(f"{name} {count}" for name, count in report.priority_counts.items()),
        "Score distribution: "
        + ", ".join(f"{band}: {count}" for band, count in report.score_distribution.items()),
    ]
    if report.common_issues:
        lines.append("Most common issues:")
        lines.extend(
            f"- {item.issue} ({item.affected_pages} pages, {item.percentage}%)"
            for item in report.common_issues
        )
    insights = report.insights
    if insights is not None:
        lines.append(
            f"HTTPS pages: {insights.https_pages}; canonical mismatches: "
            f"{insights.canonical_mismatches}; average word count: "
            f"{insights.average_word_count}; duplicate titles: {insights.duplicate_titles}"
        )
    return "\n".join(lines)


def build_synthesis_messages(report: SiteReport, slug: str, page_text: str) -> list[Any]:
    """Messages asking for the narrative site assessment.

    *page_text* is the concatenated per-page analysis text; the aggregated
    numbers from *report* are included so the narrative agrees with them.
    """
    sections = "\n".join(f"{i}. {name}" for i, name in enumerate(_SYNTHESIS_SECTIONS, start=1))
    return [
        SystemMessage(content=SYNTHESIS_SYSTEM_PROMPT),
        HumanMessage(
            content=(
                f"Below are individual page analyses for website: {slug}\n\n"
                f"{page_text}\n\n"
                f"Aggregated statistics:\n{_report_digest(report)}\n\n"
                "Based on all the page analyses above, provide a comprehensive SEO "
                f"analysis of the entire website including:\n\n{sections}\n\n"
                "Format your analysis in a clear, structured way with headings and "
                "bullet points as appropriate. Use only standard characters - no "
                "special symbols or formatting characters."
            )
        ),
    ]


def clean_analysis_text(text: str | None) -> str:
    """Strip decorative symbols and non-ASCII, collapse runs of whitespace."""
    if not text:
        return ""
    text = _LEADING_SYMBOLS.sub("", text)
    text = _NON_ASCII.sub("", text)
    text = _MULTI_SPACE.sub(" ", text)
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()
