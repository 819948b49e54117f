"""Partition page records into batches for the analysis model.

Strategies
----------
``FIXED``
    Batches of exactly ``batch_size`` records (the last may be smaller).  No
    token estimation, so it is the fastest option for very large crawls.

``TOKENS`` / ``TOKENS_FAST``
    Greedy accumulation while the estimated token sum of the records'
    :meth:`~auditor.crawl.models.PageRecord.payload_text` stays within
    ``token_limit``.  ``TOKENS`` uses the precise estimator, ``TOKENS_FAST``
    the fast one.

``AUTO``
    Picks one of the above from the record count: below
    ``precise_threshold`` → ``TOKENS``, up to ``fast_threshold`` →
    ``TOKENS_FAST``, above that → ``FIXED``.

Every strategy yields non-empty batches, in input order, with no record
repeated or dropped.  Empty input yields ``[]``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from auditor.analysis.models import Batch
from auditor.analysis.tokens import TokenEstimator
from auditor.crawl.models import PageRecord


class ChunkStrategy(str, Enum):
    FIXED = "fixed"
    TOKENS = "tokens"
    TOKENS_FAST = "tokens-fast"
    AUTO = "auto"


@dataclass(frozen=True)
class ChunkLimits:
    batch_size: int = 8
    token_limit: int = 3000
    precise_threshold: int = 100
    fast_threshold: int = 500

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1; got {self.batch_size}")
        if self.token_limit < 1:
            raise ValueError(f"token_limit must be at least 1; got {self.token_limit}")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _split_fixed(records: Sequence[PageRecord], batch_size: int) -> list[list[PageRecord]]:
    return [list(records[i : i + batch_size]) for i in range(0, len(records), batch_size)]


def _split_by_tokens(
    records: Sequence[PageRecord],
    token_limit: int,
    estimator: TokenEstimator,
) -> list[list[PageRecord]]:
    groups: list[list[PageRecord]] = []
    current: list[PageRecord] = []
    token_count = 0

    for record in records:
        tokens = estimator.estimate(record.payload_text())
        if token_count + tokens > token_limit and current:
            groups.append(current)
            current = []
            token_count = 0
        # An oversized record still lands here, alone, on the next pass.
        current.append(record)
        token_count += tokens

    if current:
        groups.append(current)
    return groups


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class Chunker:
    """Split record lists into :class:`Batch` objects.

    Args:
        fast_estimator: Estimator used by ``TOKENS_FAST``.
        precise_estimator: Estimator used by ``TOKENS``; defaults to
            *fast_estimator* when omitted.
        logger: Optional logger; defaults to this module's logger.
    """

    def __init__(
        self,
        fast_estimator: TokenEstimator,
        precise_estimator: TokenEstimator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.fast_estimator = fast_estimator
        self.precise_estimator = precise_estimator or fast_estimator
        self.log = logger or logging.getLogger(__name__)

    def select_strategy(self, count: int, limits: ChunkLimits) -> ChunkStrategy:
        """Return the concrete strategy ``AUTO`` resolves to for *count* records."""
        if count < limits.precise_threshold:
            return ChunkStrategy.TOKENS
        if count <= limits.fast_threshold:
            return ChunkStrategy.TOKENS_FAST
        return ChunkStrategy.FIXED

    def chunk(
        self,
        records: Sequence[PageRecord],
        strategy: ChunkStrategy = ChunkStrategy.AUTO,
        limits: ChunkLimits | None = None,
    ) -> list[Batch]:
        """Partition *records* into batches.

        Args:
            records: Page records in crawl order.
            strategy: One of :class:`ChunkStrategy`.
            limits: Size caps and auto-selection thresholds.

        Returns:
            Batches whose concatenated records equal *records*.
        """
        limits = limits or ChunkLimits()
        if not records:
            return []

        if strategy is ChunkStrategy.AUTO:
            strategy = self.select_strategy(len(records), limits)

        started = time.perf_counter()
        if strategy is ChunkStrategy.FIXED:
            groups = _split_fixed(records, limits.batch_size)
            estimator = None
        else:
            estimator = (
                self.precise_estimator
                if strategy is ChunkStrategy.TOKENS
                else self.fast_estimator
            )
            groups = _split_by_tokens(records, limits.token_limit, estimator)

        batches = [Batch(index=i, records=tuple(group)) for i, group in enumerate(groups)]
        elapsed_ms = (time.perf_counter() - started) * 1000

        self.log.info(
            "[CHUNKING] %s: %d batch(es) from %d row(s) in %.1fms",
            strategy.value,
            len(batches),
            len(records),
            elapsed_ms,
        )
        if estimator is not None:
            self.log.debug("[CHUNKING] token cache %s", estimator.stats())
        return batches
