"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from auditor.api import app

    uvicorn auditor.api:app
"""

from auditor.api.app import app, create_app

__all__ = ["app", "create_app"]
