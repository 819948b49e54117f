"""SEO auditor CLI — entry-point for crawl and audit runs.

Usage:
    python cli/main.py --help

Commands:
    audit   → audit an existing crawl export (``exports/<slug>/``)
    crawl   → run the Screaming Frog crawler for a URL
    run     → crawl a URL, then audit it
    serve   → start the HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from auditor.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from dataclasses import asdict
from typing import Optional

import typer

from auditor.analysis.models import SiteReport
from auditor.config import Settings, load_settings
from auditor.errors import ConfigurationError, CrawlError, InputDataError
from auditor.logging_setup import setup_logging

app = typer.Typer(
    name="seo-audit",
    help="SEO audit CLI: crawl sites and score every page with a chat model.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(env_file: Optional[Path]) -> Settings:
    try:
        settings = load_settings(env_file)
    except ConfigurationError as exc:
        typer.echo(f"[config] {exc}", err=True)
        raise typer.Exit(1)
    setup_logging(settings.log_level, settings.log_file)
    return settings


def _print_summary(slug: str, report: SiteReport, report_path: Optional[Path]) -> None:
    typer.echo(f"[audit] {slug}: {report.total_pages} page(s), average score {report.average_score}")
    if report.degraded_pages:
        typer.echo(f"[audit] {report.degraded_pages} page(s) scored without model analysis")
    for action in report.priority_actions:
        typer.echo(
            f"  {action.rank}. {action.action}  "
            f"(impact {action.impact}, effort {action.effort}, {action.affected_pages} pages)"
        )
    if report_path is not None:
        typer.echo(f"[audit] Report saved to {report_path}")
    else:
        typer.echo("[audit] Report could not be saved; see the log for details.")


_ENV_FILE = typer.Option(None, "--env-file", help="Path to a .env file.")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command("audit")
def audit(
    slug: str = typer.Option(..., help="Export slug under the exports directory."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
    env_file: Optional[Path] = _ENV_FILE,
) -> None:
    """Audit the crawl export stored for SLUG."""
    from auditor.pipeline import AuditPipeline

    settings = _load(env_file)
    try:
        result = asyncio.run(AuditPipeline(settings).run(slug))
    except InputDataError as exc:
        typer.echo(f"[audit] {exc}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(asdict(result.report), indent=2))
    else:
        _print_summary(slug, result.report, result.report_path)


@app.command("crawl")
def crawl(
    url: str = typer.Option(..., help="Site URL to crawl."),
    env_file: Optional[Path] = _ENV_FILE,
) -> None:
    """Crawl URL into the exports directory without auditing it."""
    from auditor.crawl.crawler import ScreamingFrogCrawler
    from auditor.crawl.urls import generate_slug, validate_url

    if not validate_url(url):
        typer.echo(f"[crawl] Invalid URL: {url!r}", err=True)
        raise typer.Exit(1)

    settings = _load(env_file)
    slug = generate_slug(url)
    typer.echo(f"[crawl] Crawling {url} as {slug!r} …")
    try:
        result = asyncio.run(ScreamingFrogCrawler(settings).crawl(url, settings.export_dir_for(slug)))
    except (CrawlError, ConfigurationError) as exc:
        typer.echo(f"[crawl] {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(f"[crawl] {result.data_rows} row(s) exported to {result.csv_path}")


@app.command("run")
def run(
    url: str = typer.Option(..., help="Site URL to crawl and audit."),
    env_file: Optional[Path] = _ENV_FILE,
) -> None:
    """Crawl URL, then audit the export it produces."""
    from auditor.pipeline import run_workflow

    settings = _load(env_file)
    try:
        result = asyncio.run(run_workflow(url, settings))
    except (CrawlError, InputDataError, ConfigurationError) as exc:
        typer.echo(f"[run] {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(f"[run] Crawled {result.crawl.data_rows} row(s) from {url}")
    _print_summary(result.slug, result.audit.report, result.audit.report_path)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(3000, help="Port to listen on."),
    env_file: Optional[Path] = _ENV_FILE,
) -> None:
    """Start the HTTP API with uvicorn."""
    import uvicorn

    from auditor.api.app import create_app

    settings = _load(env_file)
    uvicorn.run(create_app(settings), host=host, port=port)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
