"""Turn free-text model replies into :class:`PageAnalysis` records.

Reply format
------------
The analysis prompt asks for one section per page, sections separated by a
delimiter line (``---``), each section using this marker vocabulary::

    URL: https://example.com/
    SEO SCORE: 72
    CRITICAL ISSUES:
    - Missing meta description
    QUICK WINS:
    - Add alt text
    RECOMMENDATIONS:
    - Expand content
    PRIORITY: High

Fallback paths
--------------
Each is a separate public function so it can be tested on its own:

* :func:`fallback_score` — rule-based score when ``SEO SCORE`` is missing.
* :func:`fallback_analysis` — full rule-based record when a section is
  missing or raises during extraction.
* :func:`estimate_impact` — impact derived from score and priority.

:meth:`ResponseParser.parse` always returns exactly one analysis per input
record, in input order.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from auditor.analysis.models import AnalysisSource, Impact, PageAnalysis, Priority
from auditor.crawl.models import PageRecord

# Issue text attached to pages scored without usable model output.
PARSING_INCOMPLETE = "Analysis parsing incomplete"
LLM_UNAVAILABLE = "LLM analysis unavailable"
MARKER_ISSUES = frozenset({PARSING_INCOMPLETE.lower(), LLM_UNAVAILABLE.lower()})

LABELS = ("URL", "SEO SCORE", "CRITICAL ISSUES", "QUICK WINS", "RECOMMENDATIONS", "PRIORITY")

_GAP = r"[ \t]+"
_LABEL_PATTERNS = {label: label.replace(" ", _GAP) for label in LABELS}
_LABEL_ALT = "|".join(_LABEL_PATTERNS.values())
_ANY_LABEL = re.compile(rf"^[ \t]*(?:{_LABEL_ALT})[ \t]*:", re.IGNORECASE | re.MULTILINE)
_FIELD_PATTERNS = {
    label: re.compile(
        rf"^[ \t]*{pattern}[ \t]*:[ \t]*(?P<body>.*?)"
        rf"(?=^[ \t]*(?:{_LABEL_ALT})[ \t]*:|\Z)",
        re.IGNORECASE | re.MULTILINE | re.DOTALL,
    )
    for label, pattern in _LABEL_PATTERNS.items()
}
_DELIMITER = re.compile(r"^[ \t]*(?:-{3,}|={3,})[ \t]*$", re.MULTILINE)
_HEADING = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_BULLET = re.compile(r"^\s*(?:[-*•+]|\d+[.)])\s*")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_EMPTY_ITEMS = frozenset({"none", "n/a", "na", "-", "no issues", "none identified"})

# Rule-based scoring starts here and adds fixed bonuses.
_BASE_SCORE = 50
_MIN_CONTENT_WORDS = 300

# (check, issue, quick win) emitted by the rule-based fallback.
_RULE_FINDINGS: list[tuple[str, str, str]] = [
    ("title", "Missing title", "Write a unique, descriptive page title"),
    ("meta", "Missing meta description", "Add a compelling meta description"),
    ("h1", "Missing H1", "Add a single descriptive H1 heading"),
    ("content", "Thin content", "Expand the page to at least 300 words"),
    ("status", "Non-200 status code", "Fix or redirect the failing URL"),
]

_PRIORITY_WEIGHT = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


# ---------------------------------------------------------------------------
# Fallback paths
# ---------------------------------------------------------------------------

def fallback_score(record: PageRecord) -> int:
    """Deterministic score from the crawl row alone, clamped to [0, 100]."""
    score = _BASE_SCORE
    if record.title:
        score += 15
    if record.meta_description:
        score += 15
    if record.h1:
        score += 10
    if record.word_count > _MIN_CONTENT_WORDS:
        score += 10
    if record.status_code == 200:
        score += 10
    return max(0, min(100, score))


def estimate_impact(score: int, priority: Priority) -> Impact:
    """Lower score and higher priority mean a bigger expected payoff."""
    value = (100 - score) * _PRIORITY_WEIGHT[priority]
    if value >= 120:
        return Impact.HIGH
    if value >= 60:
        return Impact.MEDIUM
    return Impact.LOW


def _rule_findings(record: PageRecord) -> tuple[list[str], list[str]]:
    failed = {
        "title": not record.title,
        "meta": not record.meta_description,
        "h1": not record.h1,
        "content": record.word_count <= _MIN_CONTENT_WORDS,
        "status": record.status_code is not None and record.status_code != 200,
    }
    issues = [issue for key, issue, _ in _RULE_FINDINGS if failed[key]]
    wins = [win for key, _, win in _RULE_FINDINGS if failed[key]]
    return issues, wins


def fallback_analysis(
    record: PageRecord,
    source: AnalysisSource = AnalysisSource.FALLBACK,
    max_items: int = 5,
) -> PageAnalysis:
    """Build a complete analysis for *record* without any model output.

    The issue list ends with a marker (``"Analysis parsing incomplete"`` or
    ``"LLM analysis unavailable"``) so report readers can tell these pages
    apart from model-analysed ones.
    """
    issues, wins = _rule_findings(record)
    marker = LLM_UNAVAILABLE if source is AnalysisSource.DEGRADED else PARSING_INCOMPLETE
    score = fallback_score(record)
    priority = Priority.MEDIUM
    return PageAnalysis(
        url=record.url,
        score=score,
        issues=tuple(issues[:max_items]) + (marker,),
        quick_wins=tuple(wins[:max_items]),
        recommendations=(),
        priority=priority,
        estimated_impact=estimate_impact(score, priority),
        source=source,
    )


# ---------------------------------------------------------------------------
# Section extraction
# ---------------------------------------------------------------------------

@dataclass
class _Section:
    url: str | None
    score: int | None
    issues: list[str]
    quick_wins: list[str]
    recommendations: list[str]
    priority: Priority | None


_FAILED = object()


def _normalise_url(url: str) -> str:
    return url.strip().strip("<>").rstrip("/").lower()


def _field(section: str, label: str) -> str | None:
    match = _FIELD_PATTERNS[label].search(section)
    if match is None:
        return None
    return match.group("body").strip()


def _parse_score(body: str | None) -> int | None:
    if not body:
        return None
    match = _NUMBER.search(body)
    if match is None:
        return None
    return max(0, min(100, round(float(match.group()))))


class ResponseParser:
    """Parse marker-delimited model replies, one section per page.

    Args:
        max_list_items: Cap for issues / quick wins / recommendations.
        logger: Optional logger; defaults to this module's logger.
    """

    def __init__(self, max_list_items: int = 5, logger: logging.Logger | None = None) -> None:
        self.max_list_items = max_list_items
        self.log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def has_markers(text: str) -> bool:
        """``True`` if *text* contains at least one recognised label."""
        return bool(text) and bool(_ANY_LABEL.search(text))

    @staticmethod
    def split_sections(raw_text: str) -> list[str]:
        """Split on delimiter lines, keeping only sections that carry a label."""
        cleaned = _HEADING.sub("", raw_text.replace("**", ""))
        return [
            part.strip()
            for part in _DELIMITER.split(cleaned)
            if _ANY_LABEL.search(part)
        ]

    def parse_list(self, body: str | None) -> list[str]:
        """Split a list field into at most ``max_list_items`` clean entries."""
        items: list[str] = []
        for line in (body or "").splitlines():
            item = _BULLET.sub("", line, count=1).strip()
            if not item or item.lower().rstrip(".") in _EMPTY_ITEMS:
                continue
            items.append(item)
            if len(items) >= self.max_list_items:
                break
        return items

    def parse(self, raw_text: str, batch_records: Sequence[PageRecord]) -> list[PageAnalysis]:
        """Return one :class:`PageAnalysis` per record in *batch_records*.

        Algorithm:
            1. Split *raw_text* into labelled sections.
            2. Extract fields per section; a section that raises is marked
               failed and its record falls back to rule-based analysis.
            3. Assign sections to records by URL where a URL matches, then
               by position for the rest.  Extra sections are ignored.
            4. Records without a usable section get :func:`fallback_analysis`.
        """
        records = list(batch_records)
        sections: list[object] = []
        for index, text in enumerate(self.split_sections(raw_text or "")):
            try:
                sections.append(self._extract(text))
            except Exception as exc:  # noqa: BLE001
                self.log.warning("[PARSING] section %d could not be parsed: %s", index + 1, exc)
                sections.append(_FAILED)

        assigned = self._align(sections, records)

        results: list[PageAnalysis] = []
        fallbacks = 0
        for record, section in zip(records, assigned):
            if isinstance(section, _Section):
                results.append(self._build(section, record))
            else:
                fallbacks += 1
                results.append(fallback_analysis(record, max_items=self.max_list_items))

        if fallbacks:
            self.log.info(
                "[PARSING] %d/%d page(s) used fallback scoring", fallbacks, len(records)
            )
        return results

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract(self, text: str) -> _Section:
        url_body = _field(text, "URL")
        url = url_body.split()[0] if url_body else None
        return _Section(
            url=url,
            score=_parse_score(_field(text, "SEO SCORE")),
            issues=self.parse_list(_field(text, "CRITICAL ISSUES")),
            quick_wins=self.parse_list(_field(text, "QUICK WINS")),
            recommendations=self.parse_list(_field(text, "RECOMMENDATIONS")),
            priority=Priority.parse(_field(text, "PRIORITY")),
        )

    def _align(self, sections: list[object], records: list[PageRecord]) -> list[object]:
        assigned: list[object] = [None] * len(records)
        claimed: set[int] = set()

        by_url: dict[str, int] = {}
        for idx, record in enumerate(records):
            by_url.setdefault(_normalise_url(record.url), idx)

        for s_idx, section in enumerate(sections):
            if not isinstance(section, _Section) or not section.url:
                continue
            r_idx = by_url.get(_normalise_url(section.url))
            if r_idx is not None and assigned[r_idx] is None:
                assigned[r_idx] = section
                claimed.add(s_idx)

        remaining = iter(s for i, s in enumerate(sections) if i not in claimed)
        for r_idx in range(len(records)):
            if assigned[r_idx] is None:
                assigned[r_idx] = next(remaining, None)

        extra = sum(1 for _ in remaining)
        if extra:
            self.log.info("[PARSING] ignored %d extra section(s) with no matching page", extra)
        return assigned

    def _build(self, section: _Section, record: PageRecord) -> PageAnalysis:
        if section.score is None:
            score = fallback_score(record)
            source = AnalysisSource.PARTIAL
        else:
            score = section.score
            source = AnalysisSource.LLM
        priority = section.priority or Priority.MEDIUM
        return PageAnalysis(
            url=record.url,
            score=score,
            issues=tuple(section.issues),
            quick_wins=tuple(section.quick_wins),
            recommendations=tuple(section.recommendations),
            priority=priority,
            estimated_impact=estimate_impact(score, priority),
            source=source,
        )
