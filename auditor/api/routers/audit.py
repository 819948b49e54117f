"""Crawl and audit endpoints.

Routes
------
GET  /                 Health check
POST /crawl-site       Body: {"url": "https://..."}   → crawl, then audit
POST /audits/{slug}    Audit an existing export in ``<exports_dir>/<slug>/``

Error mapping
-------------
422  invalid URL, or a crawl export with no usable rows
500  invalid configuration
502  the crawler failed on every attempt
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from auditor.config import Settings, load_settings
from auditor.crawl.urls import validate_url
from auditor.errors import ConfigurationError, CrawlError, InputDataError
from auditor.pipeline import AuditPipeline, AuditResult, run_workflow

router = APIRouter()

log = logging.getLogger(__name__)

SERVICE_VERSION = "2.0.0"


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str
    version: str
    endpoints: list[str]


class CrawlRequest(BaseModel):
    url: str


class AuditResponse(BaseModel):
    slug: str
    total_rows: int
    report_path: str | None
    duration: float
    report: dict[str, Any]


class CrawlSummary(BaseModel):
    output_dir: str
    data_rows: int
    duration: float


class WorkflowResponse(BaseModel):
    status: str
    url: str
    slug: str
    timestamp: str
    crawl: CrawlSummary
    audit: AuditResponse


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_settings(request: Request) -> Settings:
    """Return the app's settings, loading them on first use."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        try:
            settings = load_settings()
        except ConfigurationError as exc:
            log.error("[API] configuration error: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        request.app.state.settings = settings
    return settings


def _audit_response(result: AuditResult) -> dict[str, Any]:
    return {
        "slug": result.slug,
        "total_rows": result.total_rows,
        "report_path": str(result.report_path) if result.report_path else None,
        "duration": round(result.duration, 3),
        "report": asdict(result.report),
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/", response_model=HealthResponse)
def health() -> dict[str, Any]:
    return {
        "status": "SEO audit service is running",
        "version": SERVICE_VERSION,
        "endpoints": ["/crawl-site", "/audits/{slug}"],
    }


@router.post("/crawl-site", response_model=WorkflowResponse)
async def crawl_site(
    body: CrawlRequest,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Crawl ``body.url`` with Screaming Frog and audit the export."""
    if not validate_url(body.url):
        raise HTTPException(status_code=422, detail="Invalid URL provided")

    try:
        result = await run_workflow(body.url, settings)
    except CrawlError as exc:
        log.error("[API] crawl failed for %s: %s", body.url, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except InputDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {
        "status": "success",
        "url": result.url,
        "slug": result.slug,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "crawl": {
            "output_dir": str(result.crawl.output_dir),
            "data_rows": result.crawl.data_rows,
            "duration": round(result.crawl.duration, 3),
        },
        "audit": _audit_response(result.audit),
    }


@router.post("/audits/{slug}", response_model=AuditResponse)
async def audit_slug(
    slug: str,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Audit an export that an earlier crawl left in the exports directory."""
    try:
        result = await AuditPipeline(settings).run(slug)
    except InputDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _audit_response(result)
