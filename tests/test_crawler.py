"""Tests for auditor.crawl.crawler.

``asyncio.create_subprocess_exec`` is patched with a fake that writes the
export file itself, so the Screaming Frog CLI is never launched.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from auditor.config import Settings
from auditor.crawl.crawler import (
    CrawlSettings,
    ScreamingFrogCrawler,
    build_command,
    crawl_settings_for,
    stderr_errors,
)
from auditor.errors import ConfigurationError, CrawlError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CSV = "Address,Word Count\nhttps://a.test/,300\nhttps://a.test/b,120\n"


def _settings(tmp_path: Path, **kwargs) -> Settings:
    kwargs.setdefault("openai_api_key", "sk-test")
    kwargs.setdefault("exports_dir", tmp_path / "exports")
    kwargs.setdefault("crawl_max_attempts", 2)
    kwargs.setdefault("crawl_retry_delay", 5.0)
    return Settings(**kwargs)


def _proc(returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"Crawl completed", stderr))
    proc.wait = AsyncMock()
    return proc


def _fake_exec(outcomes):
    """Return an AsyncMock that plays *outcomes* (``(returncode, write_csv)``) in order."""
    plan = iter(outcomes)

    async def _exec(*args, **kwargs):
        returncode, write_csv = next(plan)
        out_dir = Path(args[args.index("--output-folder") + 1])
        if write_csv:
            (out_dir / "internal_all.csv").write_text(_CSV)
        return _proc(returncode, b"ERROR: crawl aborted" if returncode else b"")

    return AsyncMock(side_effect=_exec)


# ---------------------------------------------------------------------------
# Crawl settings and command
# ---------------------------------------------------------------------------

class TestCrawlSettings:
    def test_defaults(self):
        settings = crawl_settings_for("https://example.com")
        assert (settings.max_pages, settings.timeout, settings.heap_size) == (1000, 1200, "4g")
        assert settings.reasoning == []

    def test_large_platform(self):
        settings = crawl_settings_for("https://mystore.shopify.com")
        assert (settings.max_pages, settings.heap_size) == (2000, "6g")

    def test_content_site(self):
        assert crawl_settings_for("https://example.com/blog").max_pages == 1500

    def test_mode_overrides_heuristics(self):
        fast = crawl_settings_for("https://mystore.shopify.com", "fast")
        assert (fast.max_pages, fast.timeout, fast.heap_size) == (200, 480, "2g")
        deep = crawl_settings_for("https://example.com", "comprehensive")
        assert (deep.max_pages, deep.heap_size) == (3000, "8g")

    def test_export_tabs(self):
        tabs = CrawlSettings(include_css=False, include_external=True).export_tabs().split(",")
        assert tabs[0] == "Internal:All"
        assert "Stylesheets:All" not in tabs
        assert "External:All" in tabs


class TestBuildCommand:
    def test_shell_wrapper(self, tmp_path):
        args = build_command("/opt/sf/crawl.sh", "https://a.test", tmp_path, CrawlSettings())
        assert args[:4] == ["bash", "/opt/sf/crawl.sh", "https://a.test", str(tmp_path)]

    def test_native_cli(self, tmp_path):
        args = build_command("ScreamingFrogSEOSpiderCli", "https://a.test", tmp_path, CrawlSettings())
        assert args[0] == "ScreamingFrogSEOSpiderCli"
        assert args[args.index("--crawl") + 1] == "https://a.test"
        assert "--headless" in args

    def test_stderr_errors_skip_info(self):
        stderr = "[INFO] error: harmless\nERROR: out of memory\nWARN: slow\n"
        assert stderr_errors(stderr) == ["ERROR: out of memory"]


# ---------------------------------------------------------------------------
# ScreamingFrogCrawler
# ---------------------------------------------------------------------------

class TestScreamingFrogCrawler:
    async def test_successful_crawl(self, tmp_path):
        settings = _settings(tmp_path)
        out_dir = settings.export_dir_for("a_test")
        (out_dir).mkdir(parents=True)
        (out_dir / "stale.csv").write_text("old")

        fake = _fake_exec([(0, True)])
        with patch("auditor.crawl.crawler.asyncio.create_subprocess_exec", fake):
            result = await ScreamingFrogCrawler(settings, sleep=AsyncMock()).crawl(
                "https://a.test", out_dir
            )

        assert result.data_rows == 2
        assert result.csv_path == out_dir / "internal_all.csv"
        assert not (out_dir / "stale.csv").exists()
        env = fake.await_args.kwargs["env"]
        assert env["JAVA_HEAP_SIZE"] == "4g"

    async def test_failure_then_success_retries_with_fixed_delay(self, tmp_path):
        settings = _settings(tmp_path)
        sleep = AsyncMock()
        fake = _fake_exec([(1, False), (0, True)])
        with patch("auditor.crawl.crawler.asyncio.create_subprocess_exec", fake):
            result = await ScreamingFrogCrawler(settings, sleep=sleep).crawl(
                "https://a.test", settings.export_dir_for("a_test")
            )

        assert result.data_rows == 2
        assert fake.await_count == 2
        sleep.assert_awaited_once_with(5.0)

    async def test_missing_export_exhausts_attempts(self, tmp_path):
        settings = _settings(tmp_path)
        fake = _fake_exec([(0, False), (0, False)])
        with patch("auditor.crawl.crawler.asyncio.create_subprocess_exec", fake):
            with pytest.raises(CrawlError, match="after 2 attempts"):
                await ScreamingFrogCrawler(settings, sleep=AsyncMock()).crawl(
                    "https://a.test", settings.export_dir_for("a_test")
                )

    async def test_missing_executable_is_configuration_error(self, tmp_path):
        settings = _settings(tmp_path, screaming_frog_cli="/nope/ScreamingFrogSEOSpiderCli")
        fake = AsyncMock(side_effect=FileNotFoundError("no such file"))
        with patch("auditor.crawl.crawler.asyncio.create_subprocess_exec", fake):
            with pytest.raises(ConfigurationError, match="SF_CLI_PATH"):
                await ScreamingFrogCrawler(settings, sleep=AsyncMock()).crawl(
                    "https://a.test", settings.export_dir_for("a_test")
                )
        fake.assert_awaited_once()

    async def test_timeout_kills_process(self, tmp_path):
        settings = _settings(tmp_path, crawl_max_attempts=1)
        proc = _proc()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        fake = AsyncMock(return_value=proc)
        with patch("auditor.crawl.crawler.asyncio.create_subprocess_exec", fake):
            with pytest.raises(CrawlError, match="timed out"):
                await ScreamingFrogCrawler(settings, sleep=AsyncMock()).crawl(
                    "https://a.test", settings.export_dir_for("a_test")
                )
        proc.kill.assert_called_once()
