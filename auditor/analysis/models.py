"""Dataclass models for batches, per-page analyses and the site report.

These are plain immutable value objects.  Nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator

from auditor.crawl.models import PageRecord


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def parse(cls, value: str | None) -> "Priority | None":
        """Match the leading word of *value*; ``None`` when unrecognised."""
        text = (value or "").strip().lower()
        for member in cls:
            if text.startswith(member.value.lower()):
                return member
        return None


class Impact(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class AnalysisSource(str, Enum):
    """How a :class:`PageAnalysis` was produced, from most to least trusted."""

    LLM = "llm"              # every field came from the model
    PARTIAL = "partial"      # model section parsed, score fell back to rules
    FALLBACK = "fallback"    # section missing or unparseable
    DEGRADED = "degraded"    # batch never got a model reply


@dataclass(frozen=True)
class Batch:
    """An ordered, non-empty group of records submitted in one model call."""

    index: int
    records: tuple[PageRecord, ...]

    def __post_init__(self) -> None:
        if not self.records:
            raise ValueError("a Batch must contain at least one record")

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[PageRecord]:
        return iter(self.records)


@dataclass(frozen=True)
class PageAnalysis:
    url: str
    score: int
    issues: tuple[str, ...] = ()
    quick_wins: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    priority: Priority = Priority.MEDIUM
    estimated_impact: Impact = Impact.MEDIUM
    source: AnalysisSource = AnalysisSource.LLM

    @property
    def is_fallback(self) -> bool:
        """``True`` when no model output backs the issues and score."""
        return self.source in (AnalysisSource.FALLBACK, AnalysisSource.DEGRADED)


@dataclass
class AnalysisOutcome:
    """Result of dispatching one :class:`Batch`."""

    batch: Batch
    analyses: list[PageAnalysis]
    degraded: bool = False
    error: str | None = None
    raw_text: str | None = None

    @property
    def ok(self) -> bool:
        return not self.degraded


@dataclass(frozen=True)
class IssueFrequency:
    issue: str
    affected_pages: int
    percentage: int


@dataclass(frozen=True)
class PriorityAction:
    rank: int
    action: str
    impact: str
    effort: str
    affected_pages: int


@dataclass(frozen=True)
class PageScore:
    url: str
    score: int
    priority: Priority
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class SiteInsights:
    """Deterministic statistics computed from the raw crawl rows."""

    analyzed_pages: int
    indexability: dict[str, int]
    status_codes: dict[str, int]
    https_pages: int
    canonical_mismatches: int
    average_word_count: int
    title_coverage: int
    meta_description_coverage: int
    h1_coverage: int
    duplicate_titles: int
    thin_content_pages: int


@dataclass(frozen=True)
class SiteReport:
    total_pages: int
    average_score: float
    priority_counts: dict[str, int]
    score_distribution: dict[str, int]
    top_pages: list[PageScore] = field(default_factory=list)
    bottom_pages: list[PageScore] = field(default_factory=list)
    common_issues: list[IssueFrequency] = field(default_factory=list)
    priority_actions: list[PriorityAction] = field(default_factory=list)
    degraded_pages: int = 0
    narrative: str = ""
    insights: SiteInsights | None = None

    def with_narrative(self, narrative: str) -> "SiteReport":
        """Return a copy carrying *narrative*."""
        return replace(self, narrative=narrative)
