"""End-to-end audit runs: crawl export in, persisted :class:`SiteReport` out.

``AuditPipeline.run`` wires the components together::

    read_page_rows -> filter_actual_pages -> Chunker -> BatchDispatcher
        -> Aggregator (+ build_insights) -> narrative synthesis -> ReportWriter

Batch failures, a run-level timeout, narrative failures and write failures
all degrade the report instead of aborting it.  Only configuration errors
and an export with no usable rows reach the caller.

``run_workflow`` adds the crawl step in front: validate the URL, derive the
slug, crawl into ``<exports_dir>/<slug>/`` and audit the result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from auditor.analysis.aggregator import Aggregator, build_insights
from auditor.analysis.chunker import Chunker, ChunkLimits, ChunkStrategy
from auditor.analysis.dispatcher import BatchDispatcher
from auditor.analysis.models import AnalysisOutcome, Batch, PageAnalysis, SiteReport
from auditor.analysis.parser import ResponseParser
from auditor.analysis.retry import RetryPolicy, Sleep, retry_async
from auditor.analysis.tokens import TokenEstimator
from auditor.config import Settings
from auditor.crawl.crawler import CrawlResult, ScreamingFrogCrawler
from auditor.crawl.reader import filter_actual_pages, read_page_rows
from auditor.crawl.urls import generate_slug, validate_url
from auditor.errors import InputDataError, RetryExhausted
from auditor.llm.client import LLMClient
from auditor.reports.writer import ReportWriter

NARRATIVE_UNAVAILABLE = (
    "Site-wide assessment unavailable: the analysis model could not produce a "
    "narrative. The statistics above are computed from the per-page results."
)
NO_PAGES_NARRATIVE = "No analysable pages were found in the crawl export."


@dataclass
class AuditResult:
    slug: str
    report: SiteReport
    analyses: list[PageAnalysis]
    report_path: Path | None
    total_rows: int
    duration: float


@dataclass
class WorkflowResult:
    url: str
    slug: str
    crawl: CrawlResult
    audit: AuditResult


def _analysis_digest(page: PageAnalysis) -> str:
    issues = "; ".join(page.issues) or "None"
    return f"URL: {page.url}\nSEO SCORE: {page.score}\nCRITICAL ISSUES: {issues}\nPRIORITY: {page.priority.value}"


def _page_text(outcomes: Sequence[AnalysisOutcome]) -> str:
    """Per-page text handed to narrative synthesis, in batch order."""
    parts = []
    for outcome in outcomes:
        if outcome.raw_text:
            parts.append(outcome.raw_text)
        else:
            parts.extend(_analysis_digest(page) for page in outcome.analyses)
    return "\n\n".join(parts)


class AuditPipeline:
    """Run one audit for an existing crawl export.

    Args:
        settings: Validated settings.
        llm: Chat client; built from *settings* when omitted.
        writer: Report sink; defaults to a :class:`ReportWriter` on
            ``settings.reports_dir``.
        logger: Optional logger; defaults to this module's logger.
        sleep: Awaitable sleep used for window delays and retry backoff.
    """

    def __init__(
        self,
        settings: Settings,
        llm: LLMClient | None = None,
        writer: ReportWriter | None = None,
        logger: logging.Logger | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.log = logger or logging.getLogger(__name__)
        self.llm = llm if llm is not None else LLMClient(settings, logger=self.log)
        self.writer = writer or ReportWriter(settings.reports_dir, logger=self.log)
        self._sleep = sleep

        fast = TokenEstimator(mode="approx", cache_size=settings.token_cache_size)
        precise = (
            TokenEstimator(mode="exact", cache_size=settings.token_cache_size)
            if settings.token_estimation == "exact"
            else fast
        )
        self.chunker = Chunker(fast, precise, logger=self.log)
        self.limits = ChunkLimits(
            batch_size=settings.chunk_batch_size,
            token_limit=settings.chunk_token_limit,
            precise_threshold=settings.precise_threshold,
            fast_threshold=settings.fast_threshold,
        )
        self.policy = RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
        )
        self.parser = ResponseParser(max_list_items=settings.max_list_items, logger=self.log)
        self.dispatcher = BatchDispatcher(
            self.parser,
            policy=self.policy,
            concurrency_limit=settings.concurrency_limit,
            window_delay=settings.window_delay,
            logger=self.log,
            sleep=sleep,
        )
        self.aggregator = Aggregator(
            top_n=settings.report_top_n,
            issue_top_k=settings.report_issue_top_k,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, slug: str, csv_path: Path | None = None) -> AuditResult:
        """Audit the export for *slug* and persist the report.

        Args:
            slug: Site identifier; selects ``<exports_dir>/<slug>/``.
            csv_path: Explicit export path, overriding the slug location.

        Raises:
            InputDataError: The export is missing or has no usable rows.
        """
        started = time.monotonic()
        path = csv_path or self.settings.csv_path_for(slug)
        self.log.info("[AUDIT] starting audit for %s (%s)", slug, path)

        rows = read_page_rows(path, logger=self.log)
        pages = filter_actual_pages(rows) if self.settings.filter_pages else rows
        self.log.info("[AUDIT] %d of %d row(s) are analysable pages", len(pages), len(rows))

        batches = self.chunker.chunk(pages, ChunkStrategy.AUTO, self.limits)
        outcomes = await self._dispatch(batches, slug)

        analyses = [page for outcome in outcomes for page in outcome.analyses]
        report = self.aggregator.aggregate(analyses, insights=build_insights(pages))
        report = report.with_narrative(await self._narrative(report, slug, outcomes))

        report_path = self.writer.persist(slug, report, analyses, pages)
        duration = time.monotonic() - started
        self.log.info(
            "[AUDIT] %s done in %.1fs: %d page(s), average score %.1f, %d degraded",
            slug, duration, report.total_pages, report.average_score, report.degraded_pages,
        )
        return AuditResult(
            slug=slug,
            report=report,
            analyses=analyses,
            report_path=report_path,
            total_rows=len(rows),
            duration=duration,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _dispatch(self, batches: list[Batch], slug: str) -> list[AnalysisOutcome]:
        page_count = sum(len(batch) for batch in batches)
        results: list[AnalysisOutcome | None] = [None] * len(batches)

        limit = self.settings.llm_page_limit
        if limit and page_count > limit:
            self.log.warning(
                "[AUDIT] %d pages exceed LLM_PAGE_LIMIT=%d; using rule-based scores",
                page_count, limit,
            )
            return self.dispatcher.complete_with_fallback(
                batches, results, f"site exceeds {limit} pages"
            )

        async def analyze_one(batch: Batch) -> str:
            return await self.llm.analyze_batch(batch, slug, len(batches))

        work = self.dispatcher.process_all(batches, analyze_one, results)
        if not self.settings.run_timeout:
            return await work
        try:
            return await asyncio.wait_for(work, self.settings.run_timeout)
        except asyncio.TimeoutError:
            self.log.warning(
                "[AUDIT] run timeout of %.0fs reached; degrading unfinished batches",
                self.settings.run_timeout,
            )
            return self.dispatcher.complete_with_fallback(batches, results, "run timeout")

    async def _narrative(
        self,
        report: SiteReport,
        slug: str,
        outcomes: Sequence[AnalysisOutcome],
    ) -> str:
        if not report.total_pages:
            return NO_PAGES_NARRATIVE
        if all(outcome.degraded for outcome in outcomes):
            return NARRATIVE_UNAVAILABLE

        page_text = _page_text(outcomes)
        try:
            return await retry_async(
                lambda: self.llm.synthesise(report, slug, page_text),
                self.policy,
                sleep=self._sleep,
                logger=self.log,
                label="narrative synthesis",
            )
        except RetryExhausted as exc:
            self.log.error("[AUDIT] narrative synthesis failed: %s", exc.last_error)
        except Exception as exc:  # noqa: BLE001
            self.log.error("[AUDIT] narrative synthesis failed: %r", exc)
        return NARRATIVE_UNAVAILABLE


async def run_workflow(
    url: str,
    settings: Settings,
    crawler: ScreamingFrogCrawler | None = None,
    pipeline: AuditPipeline | None = None,
    logger: logging.Logger | None = None,
) -> WorkflowResult:
    """Crawl *url* and audit the export it produces.

    Raises:
        InputDataError: *url* is not an absolute http(s) URL, or the crawl
            produced no usable rows.
        CrawlError: Every crawl attempt failed.
    """
    log = logger or logging.getLogger(__name__)
    if not validate_url(url):
        raise InputDataError(f"Invalid URL provided: {url!r}")

    slug = generate_slug(url)
    log.info("[WORKFLOW] starting %s as %s", url, slug)

    crawler = crawler or ScreamingFrogCrawler(settings, logger=log)
    crawl = await crawler.crawl(url, settings.export_dir_for(slug))

    pipeline = pipeline or AuditPipeline(settings, logger=log)
    audit = await pipeline.run(slug, csv_path=crawl.csv_path)
    return WorkflowResult(url=url, slug=slug, crawl=crawl, audit=audit)
