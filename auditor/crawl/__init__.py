"""Crawl package — crawler invocation and export loading."""

from auditor.crawl.models import Indexability, PageRecord
from auditor.crawl.reader import filter_actual_pages, read_page_rows
from auditor.crawl.urls import generate_slug, validate_url

__all__ = [
    "Indexability",
    "PageRecord",
    "filter_actual_pages",
    "read_page_rows",
    "generate_slug",
    "validate_url",
]
