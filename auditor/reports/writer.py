"""Persist a finished :class:`SiteReport` and its per-page analyses."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from auditor.analysis.models import PageAnalysis, SiteReport
from auditor.crawl.models import PageRecord
from auditor.reports.pages import (
    page_entry,
    page_filename,
    records_by_url,
    render_action_plan,
    render_page_markdown,
)


def render_markdown(slug: str, report: SiteReport, generated_at: str) -> str:
    """Short human-readable summary that sits beside the JSON report."""
    lines = [
        f"# SEO audit: {slug}",
        "",
        f"Generated: {generated_at}",
        "",
        f"- Pages analysed: {report.total_pages}",
        f"- Average score: {report.average_score}",
        f"- Pages without model analysis: {report.degraded_pages}",
        "",
        "## Score distribution",
        "",
    ]
    lines += [f"- {band}: {count}" for band, count in report.score_distribution.items()]

    if report.priority_actions:
        lines += ["", "## Priority actions", ""]
        lines += [
            f"{a.rank}. {a.action} (impact {a.impact}, effort {a.effort}, "
            f"{a.affected_pages} pages)"
            for a in report.priority_actions
        ]

    if report.common_issues:
        lines += ["", "## Common issues", ""]
        lines += [
            f"- {i.issue}: {i.affected_pages} pages ({i.percentage}%)"
            for i in report.common_issues
        ]

    if report.narrative:
        lines += ["", "## Site assessment", "", report.narrative]

    return "\n".join(lines) + "\n"


class ReportWriter:
    """Write ``<slug>_seo_report_<timestamp>.json`` plus a markdown summary.

    When page analyses are given they are stored in the JSON document under
    ``pages`` and rendered into ``<slug>_per_page_<timestamp>/``: one
    markdown file per page and a ``priority_action_plan.md``.

    Write failures are logged and reported as ``None``; a report that could
    not be saved does not fail the run that produced it.
    """

    def __init__(self, reports_dir: Path, logger: logging.Logger | None = None) -> None:
        self.reports_dir = Path(reports_dir)
        self.log = logger or logging.getLogger(__name__)

    def persist(
        self,
        slug: str,
        report: SiteReport,
        analyses: Sequence[PageAnalysis] = (),
        records: Iterable[PageRecord] = (),
    ) -> Path | None:
        now = datetime.now(timezone.utc)
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
        json_path = self.reports_dir / f"{slug}_seo_report_{stamp}.json"
        md_path = json_path.with_suffix(".md")
        pages_dir = self.reports_dir / f"{slug}_per_page_{stamp}"

        lookup = records_by_url(records)
        document = {
            "slug": slug,
            "generated_at": now.isoformat(),
            "report": asdict(report),
            "pages": [page_entry(page, lookup.get(page.url)) for page in analyses],
        }
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            json_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
            md_path.write_text(render_markdown(slug, report, now.isoformat()), encoding="utf-8")
            if analyses:
                self._write_pages(pages_dir, slug, analyses, lookup)
        except OSError as exc:
            self.log.error("[REPORT] could not write report for %s: %s", slug, exc)
            return None

        self.log.info("[REPORT] saved %s", json_path)
        return json_path

    def _write_pages(
        self,
        pages_dir: Path,
        slug: str,
        analyses: Sequence[PageAnalysis],
        lookup: Mapping[str, PageRecord],
    ) -> None:
        pages_dir.mkdir(parents=True, exist_ok=True)
        for number, page in enumerate(analyses, start=1):
            path = pages_dir / page_filename(number, page.url)
            path.write_text(
                render_page_markdown(number, page, lookup.get(page.url)), encoding="utf-8"
            )
        (pages_dir / "priority_action_plan.md").write_text(
            render_action_plan(slug, analyses), encoding="utf-8"
        )
        self.log.info("[REPORT] %d page report(s) written to %s", len(analyses), pages_dir)
