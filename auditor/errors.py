"""Exception taxonomy for the audit pipeline.

Component-local failures (a single batch, a single page) are converted into
degraded data by the component that sees them.  Only ``ConfigurationError``
and an ``InputDataError`` with no usable rows reach the caller of a run.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base exception for the auditor package."""


class ConfigurationError(AuditError):
    """A required option is missing or invalid.  Fatal at startup."""


class InputDataError(AuditError):
    """Crawl export rows are missing or corrupt."""


class TransientExternalError(AuditError):
    """An external call failed in a way that is worth retrying."""


class RateLimited(TransientExternalError):
    """The LLM API rejected the call with a rate limit."""

    def __init__(self, detail: str = "", retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limited: {detail}" if detail else "Rate limited"
        if retry_after:
            msg += f" (retry after: {retry_after}s)"
        super().__init__(msg)


class NetworkError(TransientExternalError):
    """Connection failure, timeout or non-2xx response from the LLM API."""


class MalformedResponseError(TransientExternalError):
    """The model reply was empty or carried none of the expected markers."""


class CrawlError(TransientExternalError):
    """The crawler subprocess exited unsuccessfully or timed out."""


class RetryExhausted(AuditError):
    """All retry attempts failed."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        msg = f"All {attempts} retry attempts failed"
        if last_error:
            msg += f". Last error: {last_error}"
        super().__init__(msg)
