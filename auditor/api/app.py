"""FastAPI application factory.

Settings
--------
``create_app(settings)`` stores the given settings on ``app.state``.  When
none are given they are loaded from the environment on the first request,
so importing this module never requires a configured environment.

Routers
-------
    /            — health check
    /crawl-site  — crawl a URL, then audit it
    /audits      — audit an existing crawl export
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auditor.api.routers import audit as audit_router
from auditor.config import Settings
from auditor.logging_setup import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging once the server starts."""
    settings: Settings | None = app.state.settings
    if settings is not None:
        setup_logging(settings.log_level, settings.log_file)
    else:
        setup_logging()
    yield


def create_app(settings: Settings | None = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="SEO Auditor API",
        description=(
            "Crawls sites with the Screaming Frog CLI, scores every page with "
            "a chat model and aggregates the results into a site report."
        ),
        version="2.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(audit_router.router, tags=["audit"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn auditor.api.app:app
app = create_app()
