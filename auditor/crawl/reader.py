"""Load the crawler CSV export into :class:`PageRecord` objects."""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path

from auditor.crawl.models import PageRecord
from auditor.errors import InputDataError

_ASSET_PATTERNS = [
    re.compile(
        r"\.(jpg|jpeg|png|gif|webp|svg|ico|css|js|pdf|doc|docx|xls|xlsx|zip|rar|mp3|mp4|avi|mov)$",
        re.IGNORECASE,
    ),
    re.compile(r"/wp-content/uploads/", re.IGNORECASE),
    re.compile(r"/assets/", re.IGNORECASE),
    re.compile(r"/images/", re.IGNORECASE),
    re.compile(r"/media/", re.IGNORECASE),
    re.compile(r"/static/", re.IGNORECASE),
    re.compile(r"/files/", re.IGNORECASE),
    re.compile(r"\?.*\.(jpg|jpeg|png|gif|webp|svg|ico|css|js)$", re.IGNORECASE),
]

# Pages at or below this word count carry too little content to analyse.
MIN_PAGE_WORDS = 50


def read_page_rows(
    source_path: Path,
    logger: logging.Logger | None = None,
) -> list[PageRecord]:
    """Parse *source_path* into page records, skipping malformed rows.

    Args:
        source_path: Path to the crawl export (``internal_all.csv``).
        logger: Optional logger; defaults to this module's logger.

    Returns:
        The usable records in file order.

    Raises:
        InputDataError: If the file is missing or unreadable, or if no
            usable row remains after skipping malformed ones.
    """
    log = logger or logging.getLogger(__name__)
    path = Path(source_path)
    if not path.exists():
        raise InputDataError(f"Crawl export not found: {path}")

    records: list[PageRecord] = []
    skipped = 0
    try:
        # utf-8-sig strips the BOM the crawler writes.
        with path.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            for line_no, row in enumerate(reader, start=2):
                if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                    continue
                try:
                    records.append(PageRecord.from_row(row))
                except InputDataError as exc:
                    skipped += 1
                    log.debug("[READ] skipping line %d: %s", line_no, exc)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise InputDataError(f"Could not read crawl export {path}: {exc}") from exc

    if skipped:
        log.warning("[READ] skipped %d malformed row(s) in %s", skipped, path.name)
    if not records:
        raise InputDataError(f"No usable rows in crawl export {path}")

    log.info("[READ] %d page row(s) loaded from %s", len(records), path.name)
    return records


def is_actual_page(record: PageRecord) -> bool:
    """``True`` for successful HTML pages with meaningful content."""
    successful = record.status_code in (None, 200)
    is_asset = any(pattern.search(record.url) for pattern in _ASSET_PATTERNS)
    return successful and not is_asset and record.word_count > MIN_PAGE_WORDS


def filter_actual_pages(records: list[PageRecord]) -> list[PageRecord]:
    """Drop images, stylesheets, downloads, error pages and near-empty pages."""
    return [r for r in records if is_actual_page(r)]
