"""Centralised settings for the SEO auditor.

Every recognised option is enumerated on :class:`Settings` together with its
default.  Values can be overridden via environment variables or a ``.env``
file in the project root (loaded by :func:`load_settings`).

There is no module-level instance: the CLI and the HTTP app
each build one with :func:`load_settings` and pass it to the components they
construct.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from auditor.errors import ConfigurationError

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

_LLM_PROVIDERS = ("openai", "ollama")
_CRAWL_MODES = ("default", "fast", "comprehensive")
_TOKEN_MODES = ("approx", "exact")


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    exports_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("EXPORTS_DIR", _PROJECT_ROOT / "exports"))
    )
    reports_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("REPORTS_DIR", _PROJECT_ROOT / "reports"))
    )
    csv_filename: str = field(
        default_factory=lambda: os.environ.get("CSV_FILENAME", "internal_all.csv")
    )

    # ------------------------------------------------------------------
    # Crawler
    # ------------------------------------------------------------------
    screaming_frog_cli: str = field(
        default_factory=lambda: os.environ.get("SF_CLI_PATH", "ScreamingFrogSEOSpiderCli")
    )
    crawl_mode: str = field(
        default_factory=lambda: os.environ.get("CRAWL_MODE", "default")
    )
    crawl_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_ATTEMPTS", "3"))
    )
    crawl_retry_delay: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_RETRY_DELAY", "5.0"))
    )

    # ------------------------------------------------------------------
    # Chat / analysis model
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "openai")
    )
    openai_api_key: str = field(
        default_factory=lambda: os.environ.get("OPENAI_API_KEY", "")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("AI_MODEL", "gpt-4o-mini")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "llama3.1:8b")
    )
    llm_temperature: float = field(
        default_factory=lambda: float(os.environ.get("AI_TEMPERATURE", "0.3"))
    )
    llm_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("MAX_TOKENS", "4096"))
    )
    llm_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "60.0"))
    )

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    token_estimation: str = field(
        default_factory=lambda: os.environ.get("TOKEN_ESTIMATION", "approx")
    )
    chunk_token_limit: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_TOKEN_LIMIT", "3000"))
    )
    chunk_batch_size: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_BATCH_SIZE", "8"))
    )
    precise_threshold: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_PRECISE_THRESHOLD", "100"))
    )
    fast_threshold: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_FAST_THRESHOLD", "500"))
    )
    token_cache_size: int = field(
        default_factory=lambda: int(os.environ.get("TOKEN_CACHE_SIZE", "2000"))
    )

    # ------------------------------------------------------------------
    # Dispatch / retry
    # ------------------------------------------------------------------
    concurrency_limit: int = field(
        default_factory=lambda: int(os.environ.get("CONCURRENCY_LIMIT", "3"))
    )
    window_delay: float = field(
        default_factory=lambda: float(os.environ.get("WINDOW_DELAY", "1.0"))
    )
    retry_max_attempts: int = field(
        default_factory=lambda: int(os.environ.get("MAX_RETRIES", "3"))
    )
    retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_DELAY", "3.0"))
    )
    retry_multiplier: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_MULTIPLIER", "1.5"))
    )
    retry_max_delay: float = field(
        default_factory=lambda: float(os.environ.get("RETRY_MAX_DELAY", "10.0"))
    )
    # Seconds; 0 disables the run-level timeout.
    run_timeout: float = field(
        default_factory=lambda: float(os.environ.get("RUN_TIMEOUT", "0"))
    )
    # Above this many pages every page is fallback-scored; 0 disables.
    llm_page_limit: int = field(
        default_factory=lambda: int(os.environ.get("LLM_PAGE_LIMIT", "0"))
    )
    filter_pages: bool = field(
        default_factory=lambda: _env_bool("FILTER_PAGES", "true")
    )

    # ------------------------------------------------------------------
    # Parsing / reporting
    # ------------------------------------------------------------------
    max_list_items: int = field(
        default_factory=lambda: int(os.environ.get("MAX_LIST_ITEMS", "5"))
    )
    report_top_n: int = field(
        default_factory=lambda: int(os.environ.get("REPORT_TOP_N", "5"))
    )
    report_issue_top_k: int = field(
        default_factory=lambda: int(os.environ.get("REPORT_ISSUE_TOP_K", "10"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )
    log_file: Path | None = field(
        default_factory=lambda: Path(os.environ["LOG_FILE"]) if os.environ.get("LOG_FILE") else None
    )

    def validate(self) -> "Settings":
        """Check every option once, before any batch work begins.

        Returns ``self`` so callers can chain ``Settings().validate()``.

        Raises:
            ConfigurationError: On the first invalid or missing option.
        """
        if self.llm_provider not in _LLM_PROVIDERS:
            raise ConfigurationError(
                f"LLM_PROVIDER must be one of {', '.join(_LLM_PROVIDERS)}; got {self.llm_provider!r}."
            )
        if self.llm_provider == "openai" and not self.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY environment variable is not set. "
                "Set it or switch to LLM_PROVIDER=ollama."
            )
        if self.crawl_mode not in _CRAWL_MODES:
            raise ConfigurationError(
                f"CRAWL_MODE must be one of {', '.join(_CRAWL_MODES)}; got {self.crawl_mode!r}."
            )
        if self.token_estimation not in _TOKEN_MODES:
            raise ConfigurationError(
                f"TOKEN_ESTIMATION must be one of {', '.join(_TOKEN_MODES)}; "
                f"got {self.token_estimation!r}."
            )

        positive = {
            "CHUNK_TOKEN_LIMIT": self.chunk_token_limit,
            "CHUNK_BATCH_SIZE": self.chunk_batch_size,
            "CONCURRENCY_LIMIT": self.concurrency_limit,
            "MAX_RETRIES": self.retry_max_attempts,
            "CRAWL_MAX_ATTEMPTS": self.crawl_max_attempts,
            "TOKEN_CACHE_SIZE": self.token_cache_size,
            "MAX_LIST_ITEMS": self.max_list_items,
            "REPORT_TOP_N": self.report_top_n,
            "REPORT_ISSUE_TOP_K": self.report_issue_top_k,
        }
        for name, value in positive.items():
            if value < 1:
                raise ConfigurationError(f"{name} must be at least 1; got {value}.")

        non_negative = {
            "WINDOW_DELAY": self.window_delay,
            "RETRY_DELAY": self.retry_base_delay,
            "RETRY_MAX_DELAY": self.retry_max_delay,
            "RUN_TIMEOUT": self.run_timeout,
            "LLM_PAGE_LIMIT": self.llm_page_limit,
            "CRAWL_RETRY_DELAY": self.crawl_retry_delay,
        }
        for name, value in non_negative.items():
            if value < 0:
                raise ConfigurationError(f"{name} must not be negative; got {value}.")

        if self.retry_multiplier < 1:
            raise ConfigurationError(
                f"RETRY_MULTIPLIER must be at least 1; got {self.retry_multiplier}."
            )
        if self.precise_threshold > self.fast_threshold:
            raise ConfigurationError(
                "CHUNK_PRECISE_THRESHOLD must not exceed CHUNK_FAST_THRESHOLD."
            )
        return self

    def export_dir_for(self, slug: str) -> Path:
        """Directory the crawler writes the export for *slug* into."""
        return self.exports_dir / slug

    def csv_path_for(self, slug: str) -> Path:
        """Absolute path of the crawl export CSV for *slug*."""
        return self.export_dir_for(slug) / self.csv_filename


def load_settings(env_file: Path | None = None) -> Settings:
    """Load ``.env``, build a :class:`Settings` and validate it.

    Args:
        env_file: Optional explicit ``.env`` path; defaults to the one in the
            project root.  Variables already present in the environment win.

    Raises:
        ConfigurationError: If any option is invalid.  Numeric options that
            cannot be parsed at all are reported the same way.
    """
    load_dotenv(env_file or _PROJECT_ROOT / ".env", override=False)
    try:
        settings = Settings()
    except ValueError as exc:
        raise ConfigurationError(f"Invalid numeric configuration value: {exc}") from exc
    return settings.validate()
