"""Run the Screaming Frog SEO Spider CLI for one site.

Crawl limits are picked per URL: known large platforms and content-heavy
sites get more pages and time, and ``CRAWL_MODE`` (``fast`` or
``comprehensive``) overrides both.  The subprocess runs under a timeout and
is retried with the shared retry utility; a crawl counts as successful only
when the export directory holds ``internal_all.csv``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from auditor.analysis.retry import RetryPolicy, Sleep, retry_async
from auditor.config import Settings
from auditor.errors import ConfigurationError, CrawlError, RetryExhausted

LARGE_PLATFORMS = (
    "shopify.", "woocommerce.", "magento.", "bigcommerce.",
    "wordpress.", "drupal.", "joomla.",
    "github.", "gitlab.", "bitbucket.",
    "medium.", "substack.", "ghost.",
    "squarespace.", "wix.", "webflow.",
)
ECOMMERCE_PATTERNS = (
    "/shop", "/store", "/product", "/cart", "/checkout",
    "shop.", "store.", "buy.", "order.",
)
CONTENT_PATTERNS = (
    "blog.", "news.", "articles.", "post.", "content.",
    "/blog", "/news", "/articles", "/posts",
)

BASE_EXPORT_TABS = (
    "Internal:All",
    "Page Titles:All",
    "Meta Description:All",
    "H1:All",
    "H2:All",
    "Canonical:All",
    "Response Codes:All",
    "Redirects:All",
)

# Lines of crawler stderr worth surfacing.
_ERROR_MARKERS = (
    "error:", "failed:", "exception", "fatal", "out of memory",
    "connection refused", "timeout exceeded",
)


@dataclass
class CrawlSettings:
    max_pages: int = 1000
    timeout: float = 20 * 60
    heap_size: str = "4g"
    include_images: bool = True
    include_css: bool = True
    include_js: bool = True
    include_external: bool = False
    reasoning: list[str] = field(default_factory=list)

    def export_tabs(self) -> str:
        tabs = list(BASE_EXPORT_TABS)
        if self.include_images:
            tabs.append("Images:All")
        if self.include_css:
            tabs.append("Stylesheets:All")
        if self.include_js:
            tabs.append("Scripts:All")
        if self.include_external:
            tabs.append("External:All")
        return ",".join(tabs)


@dataclass(frozen=True)
class CrawlResult:
    url: str
    output_dir: Path
    csv_path: Path
    data_rows: int
    duration: float
    settings: CrawlSettings


def crawl_settings_for(url: str, crawl_mode: str = "default") -> CrawlSettings:
    """Pick crawl limits from URL heuristics and the configured mode."""
    domain = urlparse(url).netloc.lower() or url.lower()
    lowered = url.lower()
    settings = CrawlSettings()

    if any(platform in domain for platform in LARGE_PLATFORMS):
        settings.max_pages = 2000
        settings.timeout = 30 * 60
        settings.heap_size = "6g"
        settings.reasoning.append("Large platform detected")

    if any(pattern in lowered for pattern in ECOMMERCE_PATTERNS):
        settings.include_images = True
        settings.reasoning.append("E-commerce site detected")

    if any(pattern in lowered for pattern in CONTENT_PATTERNS):
        settings.max_pages = 1500
        settings.reasoning.append("Content-heavy site detected")

    if crawl_mode == "fast":
        settings.max_pages = 200
        settings.timeout = 8 * 60
        settings.heap_size = "2g"
        settings.reasoning.append("Fast mode enabled")
    elif crawl_mode == "comprehensive":
        settings.max_pages = 3000
        settings.timeout = 45 * 60
        settings.heap_size = "8g"
        settings.reasoning.append("Comprehensive mode enabled")

    return settings


def build_command(cli_path: str, url: str, output_dir: Path, settings: CrawlSettings) -> list[str]:
    """Argument list for the crawler.

    A ``.sh`` wrapper script is called as ``bash script url dir tabs``;
    anything else is treated as the Screaming Frog CLI binary itself.
    """
    tabs = settings.export_tabs()
    if cli_path.endswith(".sh"):
        return ["bash", cli_path, url, str(output_dir), tabs]
    return [
        cli_path,
        "--crawl", url,
        "--headless",
        "--output-folder", str(output_dir),
        "--export-tabs", tabs,
        "--overwrite",
    ]


def stderr_errors(stderr: str, limit: int = 3) -> list[str]:
    """The first few stderr lines that look like real errors."""
    errors = []
    for line in stderr.splitlines():
        lowered = line.strip().lower()
        if lowered and "[info]" not in lowered and any(m in lowered for m in _ERROR_MARKERS):
            errors.append(line.strip())
            if len(errors) >= limit:
                break
    return errors


class ScreamingFrogCrawler:
    """Crawl a site into ``<exports_dir>/<slug>/``.

    Args:
        settings: Supplies the CLI path, crawl mode and retry options.
        logger: Optional logger; defaults to this module's logger.
        sleep: Awaitable sleep between attempts, injectable for tests.
    """

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.log = logger or logging.getLogger(__name__)
        self._sleep = sleep
        # Fixed wait between crawl attempts.
        self.policy = RetryPolicy(
            max_attempts=settings.crawl_max_attempts,
            base_delay=settings.crawl_retry_delay,
            multiplier=1.0,
            max_delay=settings.crawl_retry_delay,
        )

    async def crawl(self, url: str, output_dir: Path) -> CrawlResult:
        """Run the crawler until it produces an export or attempts run out.

        Raises:
            ConfigurationError: The crawler executable does not exist.
            CrawlError: Every attempt failed; the message carries the last
                failure.
        """
        crawl_settings = crawl_settings_for(url, self.settings.crawl_mode)
        self.log.info(
            "[CRAWL] %s: max %d pages, timeout %ds, heap %s%s",
            url,
            crawl_settings.max_pages,
            int(crawl_settings.timeout),
            crawl_settings.heap_size,
            f" ({'; '.join(crawl_settings.reasoning)})" if crawl_settings.reasoning else "",
        )
        # Each crawl starts from an empty export directory.
        output_dir = Path(output_dir)
        shutil.rmtree(output_dir, ignore_errors=True)
        output_dir.mkdir(parents=True, exist_ok=True)

        try:
            return await retry_async(
                lambda: self._attempt(url, output_dir, crawl_settings),
                self.policy,
                retry_on=(CrawlError,),
                sleep=self._sleep,
                logger=self.log,
                label=f"crawl of {url}",
            )
        except RetryExhausted as exc:
            raise CrawlError(
                f"Crawl failed after {exc.attempts} attempts: {exc.last_error}"
            ) from exc

    async def _attempt(self, url: str, output_dir: Path, crawl_settings: CrawlSettings) -> CrawlResult:
        args = build_command(self.settings.screaming_frog_cli, url, output_dir, crawl_settings)
        env = {**os.environ, "JAVA_HEAP_SIZE": crawl_settings.heap_size, "LANG": "en_US.UTF-8"}
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as exc:
            raise ConfigurationError(
                f"Crawler executable not found: {args[0]}. Set SF_CLI_PATH."
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), crawl_settings.timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise CrawlError(
                f"crawler timed out after {int(crawl_settings.timeout // 60)} minutes; "
                "reduce max pages or use CRAWL_MODE=fast"
            ) from exc

        duration = time.monotonic() - started
        err_text = stderr.decode("utf-8", errors="replace") if stderr else ""
        if proc.returncode != 0:
            detail = "; ".join(stderr_errors(err_text)) or f"exit code {proc.returncode}"
            raise CrawlError(f"crawler failed: {detail}")

        for line in stderr_errors(err_text):
            self.log.warning("[CRAWL] %s", line)
        self.log.debug("[CRAWL] stdout: %s", (stdout or b"").decode("utf-8", errors="replace")[:500])

        csv_path = output_dir / self.settings.csv_filename
        data_rows = self._validate_output(csv_path)
        self.log.info("[CRAWL] completed in %.1fs, %d data row(s)", duration, data_rows)
        return CrawlResult(
            url=url,
            output_dir=output_dir,
            csv_path=csv_path,
            data_rows=data_rows,
            duration=duration,
            settings=crawl_settings,
        )

    def _validate_output(self, csv_path: Path) -> int:
        if not csv_path.exists():
            raise CrawlError(f"crawler produced no {csv_path.name} in {csv_path.parent}")
        with csv_path.open(encoding="utf-8-sig", errors="replace") as fh:
            lines = sum(1 for line in fh if line.strip())
        data_rows = max(0, lines - 1)
        if data_rows == 0:
            self.log.warning(
                "[CRAWL] %s has no data rows; the site may block crawlers, need "
                "authentication or disallow crawling in robots.txt",
                csv_path.name,
            )
        return data_rows
