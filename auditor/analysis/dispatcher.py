"""Windowed, retrying dispatch of batches to the analysis model.

Batches are grouped into windows of ``concurrency_limit``.  All calls in a
window run concurrently on the event loop; the next window starts only after
every outcome of the current one has resolved, after a fixed
``window_delay``.  The upstream API enforces coarse per-minute limits, so
finer-grained scheduling would gain nothing.

A batch whose call keeps failing is retried with exponential backoff and then
degraded to rule-based scores.  The run never aborts because of one batch.

Outcomes are written into their positional slot of ``results`` as soon as
they resolve.  A caller that wraps :meth:`BatchDispatcher.process_all` in a
timeout can therefore keep every completed slot and fill the rest with
:meth:`BatchDispatcher.complete_with_fallback`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from auditor.analysis.models import AnalysisOutcome, AnalysisSource, Batch
from auditor.analysis.parser import ResponseParser, fallback_analysis
from auditor.analysis.retry import RetryPolicy, Sleep, retry_async
from auditor.errors import RetryExhausted, TransientExternalError

AnalyzeOne = Callable[[Batch], Awaitable[str]]


class BatchDispatcher:
    """Drive ``analyze_one`` over every batch with bounded concurrency.

    Args:
        parser: Turns each raw reply into per-page analyses.
        policy: Retry policy applied to every ``analyze_one`` call.
        concurrency_limit: Batches dispatched together in one window.
        window_delay: Seconds to wait between windows.
        logger: Optional logger; defaults to this module's logger.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        parser: ResponseParser,
        policy: RetryPolicy | None = None,
        concurrency_limit: int = 3,
        window_delay: float = 1.0,
        logger: logging.Logger | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1; got {concurrency_limit}")
        self.parser = parser
        self.policy = policy or RetryPolicy()
        self.concurrency_limit = concurrency_limit
        self.window_delay = window_delay
        self.log = logger or logging.getLogger(__name__)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_all(
        self,
        batches: Sequence[Batch],
        analyze_one: AnalyzeOne,
        results: list[AnalysisOutcome | None] | None = None,
    ) -> list[AnalysisOutcome]:
        """Analyse every batch and return outcomes in batch order.

        Args:
            batches: Batches in input order.
            analyze_one: Coroutine function returning the model's raw text
                for one batch.
            results: Optional pre-sized list the outcomes are written into.
                Pass one in to inspect partial progress after cancellation.

        Returns:
            One :class:`AnalysisOutcome` per batch, positionally aligned.
        """
        if results is None:
            results = [None] * len(batches)
        elif len(results) != len(batches):
            raise ValueError("results must have one slot per batch")

        total_windows = (len(batches) + self.concurrency_limit - 1) // self.concurrency_limit
        for start in range(0, len(batches), self.concurrency_limit):
            window_no = start // self.concurrency_limit + 1
            window = batches[start : start + self.concurrency_limit]
            self.log.info(
                "[DISPATCH] window %d/%d (%d batch(es))", window_no, total_windows, len(window)
            )

            await asyncio.gather(
                *(
                    self._run_one(batch, analyze_one, results, start + offset, len(batches))
                    for offset, batch in enumerate(window)
                )
            )

            remaining = len(batches) - (start + len(window))
            self.log.info(
                "[DISPATCH] window %d/%d done; %d batch(es) remaining",
                window_no, total_windows, remaining,
            )
            if remaining and self.window_delay > 0:
                await self._sleep(self.window_delay)

        degraded = sum(1 for r in results if r is not None and r.degraded)
        self.log.info(
            "[DISPATCH] %d batch(es) processed, %d degraded", len(batches), degraded
        )
        return [r for r in results if r is not None]

    def degraded_outcome(self, batch: Batch, reason: str) -> AnalysisOutcome:
        """Rule-based outcome for *batch* after its model call gave up."""
        return AnalysisOutcome(
            batch=batch,
            analyses=[
                fallback_analysis(
                    record,
                    source=AnalysisSource.DEGRADED,
                    max_items=self.parser.max_list_items,
                )
                for record in batch.records
            ],
            degraded=True,
            error=reason,
        )

    def complete_with_fallback(
        self,
        batches: Sequence[Batch],
        results: list[AnalysisOutcome | None],
        reason: str,
    ) -> list[AnalysisOutcome]:
        """Fill every unresolved slot of *results* with a degraded outcome."""
        missing = 0
        for idx, batch in enumerate(batches):
            if results[idx] is None:
                results[idx] = self.degraded_outcome(batch, reason)
                missing += 1
        if missing:
            self.log.warning("[DISPATCH] %d batch(es) degraded: %s", missing, reason)
        return [r for r in results if r is not None]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_one(
        self,
        batch: Batch,
        analyze_one: AnalyzeOne,
        results: list[AnalysisOutcome | None],
        slot: int,
        total: int,
    ) -> None:
        label = f"batch {batch.index + 1}/{total}"
        try:
            raw = await retry_async(
                lambda: analyze_one(batch),
                self.policy,
                retry_on=(TransientExternalError,),
                sleep=self._sleep,
                logger=self.log,
                label=label,
            )
        except RetryExhausted as exc:
            self.log.error("[DISPATCH] %s degraded after retries: %s", label, exc.last_error)
            results[slot] = self.degraded_outcome(batch, str(exc))
            return
        except Exception as exc:  # noqa: BLE001
            # Not retryable, but still confined to this batch.
            self.log.error("[DISPATCH] %s degraded, unexpected error: %r", label, exc)
            results[slot] = self.degraded_outcome(batch, f"{type(exc).__name__}: {exc}")
            return

        results[slot] = AnalysisOutcome(
            batch=batch,
            analyses=self.parser.parse(raw, batch.records),
            raw_text=raw,
        )
        self.log.debug("[DISPATCH] %s analysed (%d chars)", label, len(raw))
