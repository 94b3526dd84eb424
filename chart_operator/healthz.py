"""Liveness endpoint served while the operator runs.

The endpoint only reports that the process is up. It does not look at the
state of any chart deployment.
"""

from typing import Any

from fastapi import APIRouter, FastAPI

from .project import NAME, VERSION

__all__ = [
    "router",
    "create_app",
]

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, Any]:
    """Report that the operator is alive."""
    return {"status": "ok", "name": NAME, "version": VERSION}


def create_app() -> FastAPI:
    """Create the FastAPI application serving the health endpoint."""
    app = FastAPI(title=NAME, version=VERSION, docs_url=None, redoc_url=None)
    app.include_router(router)
    return app
