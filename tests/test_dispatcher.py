"""Tests for auditor.analysis.dispatcher (BatchDispatcher).

The analyzer is a plain coroutine function and ``sleep`` is a no-op
AsyncMock, so no test waits on real time except where a slow batch is
simulated with a short ``asyncio.sleep``.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from auditor.analysis.dispatcher import BatchDispatcher
from auditor.analysis.models import AnalysisSource, Batch
from auditor.analysis.parser import LLM_UNAVAILABLE, ResponseParser
from auditor.analysis.retry import RetryPolicy
from auditor.crawl.models import PageRecord
from auditor.errors import MalformedResponseError, NetworkError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _batches(n: int) -> list[Batch]:
    return [
        Batch(index=i, records=(PageRecord(url=f"https://example.com/{i}"),))
        for i in range(n)
    ]


def _reply(batch: Batch, score: int = 80) -> str:
    return f"URL: {batch.records[0].url}\nSEO SCORE: {score}\nPRIORITY: Low"


def _dispatcher(sleep=None, **kwargs) -> BatchDispatcher:
    kwargs.setdefault("policy", RetryPolicy(max_attempts=3, base_delay=0.0))
    kwargs.setdefault("window_delay", 0.0)
    return BatchDispatcher(ResponseParser(), sleep=sleep or AsyncMock(), **kwargs)


# ---------------------------------------------------------------------------
# Ordering and windows
# ---------------------------------------------------------------------------

class TestOrdering:
    async def test_results_follow_batch_order_when_first_is_slowest(self):
        batches = _batches(3)

        async def analyze(batch: Batch) -> str:
            if batch.index == 0:
                await asyncio.sleep(0.05)
            return _reply(batch, score=10 + batch.index)

        outcomes = await _dispatcher(concurrency_limit=3).process_all(batches, analyze)
        assert [o.batch.index for o in outcomes] == [0, 1, 2]
        assert [o.analyses[0].score for o in outcomes] == [10, 11, 12]

    async def test_windows_never_overlap(self):
        batches = _batches(7)
        in_flight = 0
        peak = 0

        async def analyze(batch: Batch) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return _reply(batch)

        outcomes = await _dispatcher(concurrency_limit=3).process_all(batches, analyze)
        assert len(outcomes) == 7
        assert peak <= 3

    async def test_delay_only_between_windows(self):
        sleep = AsyncMock()
        dispatcher = _dispatcher(sleep=sleep, concurrency_limit=2, window_delay=1.0)

        async def analyze(batch: Batch) -> str:
            return _reply(batch)

        await dispatcher.process_all(_batches(5), analyze)
        # Three windows, two gaps.
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]

    async def test_empty_input(self):
        analyze = AsyncMock()
        assert await _dispatcher().process_all([], analyze) == []
        analyze.assert_not_awaited()

    def test_invalid_concurrency_rejected(self):
        with pytest.raises(ValueError):
            BatchDispatcher(ResponseParser(), concurrency_limit=0)


# ---------------------------------------------------------------------------
# Retry and degradation
# ---------------------------------------------------------------------------

class TestDegradation:
    async def test_deterministic_failure_degrades_only_that_batch(self):
        batches = _batches(5)
        calls: list[int] = []

        async def analyze(batch: Batch) -> str:
            calls.append(batch.index)
            if batch.index == 1:
                raise NetworkError("connection reset")
            return _reply(batch)

        outcomes = await _dispatcher(concurrency_limit=2).process_all(batches, analyze)

        assert [o.degraded for o in outcomes] == [False, True, False, False, False]
        assert calls.count(1) == 3
        degraded = outcomes[1]
        assert degraded.analyses[0].source is AnalysisSource.DEGRADED
        assert LLM_UNAVAILABLE in degraded.analyses[0].issues
        assert "connection reset" in degraded.error

    async def test_transient_failure_recovers(self):
        attempts = {"n": 0}

        async def analyze(batch: Batch) -> str:
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise MalformedResponseError("no markers")
            return _reply(batch, score=66)

        [outcome] = await _dispatcher().process_all(_batches(1), analyze)
        assert outcome.ok
        assert outcome.analyses[0].score == 66

    async def test_unexpected_error_is_not_retried_but_degrades(self):
        analyze = AsyncMock(side_effect=RuntimeError("bug"))
        [outcome] = await _dispatcher().process_all(_batches(1), analyze)
        assert outcome.degraded
        analyze.assert_awaited_once()

    async def test_backoff_uses_policy_delays(self):
        sleep = AsyncMock()
        dispatcher = _dispatcher(
            sleep=sleep,
            policy=RetryPolicy(max_attempts=3, base_delay=3.0, multiplier=1.5, max_delay=10.0),
        )
        analyze = AsyncMock(side_effect=NetworkError("down"))
        await dispatcher.process_all(_batches(1), analyze)
        assert [c.args[0] for c in sleep.await_args_list] == [3.0, 4.5]


# ---------------------------------------------------------------------------
# Partial results
# ---------------------------------------------------------------------------

class TestPartialResults:
    async def test_complete_with_fallback_keeps_finished_slots(self):
        batches = _batches(4)
        dispatcher = _dispatcher(concurrency_limit=2)
        results = [None] * len(batches)

        async def analyze(batch: Batch) -> str:
            if batch.index >= 2:
                await asyncio.sleep(10)
            return _reply(batch, score=90)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(dispatcher.process_all(batches, analyze, results), 0.1)

        outcomes = dispatcher.complete_with_fallback(batches, results, "run timeout")
        assert [o.degraded for o in outcomes] == [False, False, True, True]
        assert outcomes[0].analyses[0].score == 90
        assert outcomes[3].error == "run timeout"

    async def test_results_length_must_match(self):
        with pytest.raises(ValueError):
            await _dispatcher().process_all(_batches(2), AsyncMock(), [None])
