"""Tests for the HTTP API (auditor.api).

The pipeline and workflow are patched in the router module, so these tests
cover request validation, response shapes and error mapping only.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from auditor.analysis.aggregator import Aggregator
from auditor.analysis.models import PageAnalysis
from auditor.api.app import create_app
from auditor.config import Settings
from auditor.crawl.crawler import CrawlResult, CrawlSettings
from auditor.errors import ConfigurationError, CrawlError, InputDataError
from auditor.pipeline import AuditResult, WorkflowResult


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test",
        exports_dir=tmp_path / "exports",
        reports_dir=tmp_path / "reports",
    )


@pytest.fixture()
def client(settings):
    with TestClient(create_app(settings), raise_server_exceptions=True) as c:
        yield c


def _audit_result(slug: str = "a_test") -> AuditResult:
    report = Aggregator().aggregate([PageAnalysis(url="https://a.test/", score=77)])
    return AuditResult(
        slug=slug,
        report=report,
        analyses=[],
        report_path=Path("/tmp/reports/a_test_seo_report.json"),
        total_rows=1,
        duration=0.5,
    )


def _workflow_result() -> WorkflowResult:
    return WorkflowResult(
        url="https://a.test",
        slug="a_test",
        crawl=CrawlResult(
            url="https://a.test",
            output_dir=Path("/tmp/exports/a_test"),
            csv_path=Path("/tmp/exports/a_test/internal_all.csv"),
            data_rows=1,
            duration=2.0,
            settings=CrawlSettings(),
        ),
        audit=_audit_result(),
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert "running" in data["status"]
        assert "/crawl-site" in data["endpoints"]


class TestCrawlSite:
    def test_success(self, client):
        with patch(
            "auditor.api.routers.audit.run_workflow",
            AsyncMock(return_value=_workflow_result()),
        ) as run:
            resp = client.post("/crawl-site", json={"url": "https://a.test"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "success"
        assert data["slug"] == "a_test"
        assert data["crawl"]["data_rows"] == 1
        assert data["audit"]["report"]["average_score"] == 77.0
        run.assert_awaited_once()

    def test_invalid_url_is_422(self, client):
        with patch("auditor.api.routers.audit.run_workflow", AsyncMock()) as run:
            resp = client.post("/crawl-site", json={"url": "not-a-url"})
        assert resp.status_code == 422
        run.assert_not_awaited()

    def test_missing_body_field_is_422(self, client):
        assert client.post("/crawl-site", json={}).status_code == 422

    def test_crawler_failure_is_502(self, client):
        with patch(
            "auditor.api.routers.audit.run_workflow",
            AsyncMock(side_effect=CrawlError("Crawl failed after 3 attempts")),
        ):
            resp = client.post("/crawl-site", json={"url": "https://a.test"})
        assert resp.status_code == 502
        assert "3 attempts" in resp.json()["detail"]


class TestAuditSlug:
    def test_success(self, client):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=_audit_result())
        with patch("auditor.api.routers.audit.AuditPipeline", return_value=pipeline):
            resp = client.post("/audits/a_test")

        assert resp.status_code == 200
        data = resp.json()
        assert data["slug"] == "a_test"
        assert data["report_path"].endswith("a_test_seo_report.json")
        pipeline.run.assert_awaited_once_with("a_test")

    def test_no_usable_rows_is_422(self, client):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=InputDataError("No usable rows"))
        with patch("auditor.api.routers.audit.AuditPipeline", return_value=pipeline):
            resp = client.post("/audits/a_test")
        assert resp.status_code == 422


class TestSettingsLoading:
    def test_configuration_error_is_500(self):
        app = create_app()
        with patch(
            "auditor.api.routers.audit.load_settings",
            side_effect=ConfigurationError("OPENAI_API_KEY environment variable is not set."),
        ):
            with TestClient(app) as c:
                resp = c.post("/audits/a_test")
        assert resp.status_code == 500
        assert "OPENAI_API_KEY" in resp.json()["detail"]
