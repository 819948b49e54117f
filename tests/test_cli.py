"""Tests for the typer CLI in cli/main.py."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from auditor.analysis.aggregator import Aggregator
from auditor.analysis.models import PageAnalysis
from auditor.config import Settings
from auditor.errors import ConfigurationError, InputDataError
from auditor.pipeline import AuditResult
from cli.main import app

runner = CliRunner()


@pytest.fixture()
def settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(openai_api_key="sk-test", exports_dir=tmp_path, reports_dir=tmp_path)
    monkeypatch.setattr("cli.main.load_settings", lambda env_file=None: settings)
    return settings


def _result() -> AuditResult:
    report = Aggregator().aggregate(
        [PageAnalysis(url="https://a.test/", score=64, issues=("Missing H1",))]
    )
    return AuditResult(
        slug="a_test",
        report=report,
        analyses=[],
        report_path=Path("/tmp/a_test_seo_report.json"),
        total_rows=1,
        duration=0.1,
    )


class TestAudit:
    def test_prints_summary(self, settings):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=_result())
        with patch("auditor.pipeline.AuditPipeline", return_value=pipeline):
            result = runner.invoke(app, ["audit", "--slug", "a_test"])

        assert result.exit_code == 0, result.output
        assert "average score 64.0" in result.output
        assert "Add H1 tags to all pages" in result.output
        assert "Report saved to" in result.output

    def test_json_output(self, settings):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=_result())
        with patch("auditor.pipeline.AuditPipeline", return_value=pipeline):
            result = runner.invoke(app, ["audit", "--slug", "a_test", "--json"])
        assert result.exit_code == 0
        assert '"average_score": 64.0' in result.output

    def test_missing_export_exits_1(self, settings):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=InputDataError("Crawl export not found"))
        with patch("auditor.pipeline.AuditPipeline", return_value=pipeline):
            result = runner.invoke(app, ["audit", "--slug", "missing"])
        assert result.exit_code == 1


class TestConfiguration:
    def test_configuration_error_exits_1(self, monkeypatch):
        def _fail(env_file=None):
            raise ConfigurationError("OPENAI_API_KEY environment variable is not set.")

        monkeypatch.setattr("cli.main.load_settings", _fail)
        result = runner.invoke(app, ["audit", "--slug", "a_test"])
        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output


class TestCrawl:
    def test_invalid_url_exits_1(self, settings):
        result = runner.invoke(app, ["crawl", "--url", "nope"])
        assert result.exit_code == 1
        assert "Invalid URL" in result.output
