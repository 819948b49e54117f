"""URL validation and slug generation for crawl jobs."""

from __future__ import annotations

import re
from urllib.parse import urlparse


def validate_url(url: str) -> bool:
    """Return ``True`` if *url* is an absolute http(s) URL with a host."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def generate_slug(url: str) -> str:
    """Derive a filesystem-safe slug, e.g. ``https://a.test/x`` → ``a_test_x``."""
    slug = re.sub(r"^https?://", "", url.strip())
    slug = re.sub(r"[^a-zA-Z0-9]", "_", slug)
    slug = re.sub(r"_+", "_", slug)
    return slug.strip("_").lower()
