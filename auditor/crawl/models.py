"""Data models for rows of the crawl export."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from auditor.errors import InputDataError

# Max characters kept per text field in the model payload.
_FIELD_CHAR_LIMIT = 200

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d",
)


class Indexability(str, Enum):
    INDEXABLE = "Indexable"
    NON_INDEXABLE = "Non-Indexable"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> "Indexability":
        """Map a crawler label (``"Indexable"``, ``"Non-Indexable"``, …)."""
        norm = (value or "").strip().lower().replace(" ", "").replace("-", "")
        if norm == "indexable":
            return cls.INDEXABLE
        if norm == "nonindexable":
            return cls.NON_INDEXABLE
        return cls.UNKNOWN


def _first(row: Mapping[str, Any], *keys: str) -> str:
    """Return the first non-empty stripped value among *keys*."""
    for key in keys:
        value = row.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _parse_count(row: Mapping[str, Any], key: str) -> int:
    raw = _first(row, key)
    if not raw:
        return 0
    try:
        value = int(float(raw.replace(",", "")))
    except (ValueError, OverflowError) as exc:
        raise InputDataError(f"column {key!r} is not numeric: {raw!r}") from exc
    if value < 0:
        raise InputDataError(f"column {key!r} is negative: {raw!r}")
    return value


def _parse_status(row: Mapping[str, Any]) -> int | None:
    raw = _first(row, "Status Code")
    if not raw:
        return None
    try:
        return int(float(raw))
    except (ValueError, OverflowError) as exc:
        raise InputDataError(f"column 'Status Code' is not numeric: {raw!r}") from exc


def _parse_timestamp(raw: str) -> datetime | None:
    """Best-effort timestamp parse; unknown formats yield ``None``."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    return None


@dataclass(frozen=True)
class PageRecord:
    """One row of the crawler's ``internal_all.csv`` export."""

    url: str
    title: str = ""
    meta_description: str = ""
    word_count: int = 0
    h1: str = ""
    h1_secondary: str = ""
    status_code: int | None = None
    indexability: Indexability = Indexability.UNKNOWN
    canonical_url: str = ""
    inlinks: int = 0
    outlinks: int = 0
    last_modified: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PageRecord":
        """Build a record from a CSV row keyed by crawler column names.

        Raises:
            InputDataError: If the row has no URL or a numeric column holds
                something that is not a non-negative number.
        """
        url = _first(row, "Address", "URL")
        if not url:
            raise InputDataError("row has no Address/URL value")
        return cls(
            url=url,
            title=_first(row, "Title 1", "Title"),
            meta_description=_first(row, "Meta Description 1", "Meta Description"),
            word_count=_parse_count(row, "Word Count"),
            h1=_first(row, "H1-1"),
            h1_secondary=_first(row, "H1-2"),
            status_code=_parse_status(row),
            indexability=Indexability.parse(_first(row, "Indexability")),
            canonical_url=_first(row, "Canonical Link Element 1"),
            inlinks=_parse_count(row, "Inlinks"),
            outlinks=_parse_count(row, "Outlinks"),
            last_modified=_parse_timestamp(_first(row, "Last Modified")),
        )

    def payload_text(self) -> str:
        """The record exactly as it appears in the batch prompt.

        Token budgeting estimates this string, so a batch's estimate covers
        what the model receives.
        """
        return json.dumps(self.to_payload(), indent=2)

    def to_payload(self) -> dict[str, Any]:
        """JSON-serialisable view sent to the model, keyed by crawler column names."""
        return {
            "Address": self.url,
            "Title": self.title[:_FIELD_CHAR_LIMIT],
            "Meta Description 1": self.meta_description[:_FIELD_CHAR_LIMIT],
            "H1-1": self.h1[:_FIELD_CHAR_LIMIT],
            "H1-2": self.h1_secondary[:_FIELD_CHAR_LIMIT],
            "Word Count": self.word_count,
            "Status Code": self.status_code,
            "Indexability": self.indexability.value,
            "Canonical Link Element 1": self.canonical_url,
            "Inlinks": self.inlinks,
            "Outlinks": self.outlinks,
        }
