"""FastAPI application factory for the redaction service."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pageredact import __version__
from pageredact.api import deps
from pageredact.api.routers import documents, export, regions
from pageredact.detection.detectors import DetectorSet
from pageredact.errors import InvalidGeometry, PageBusy, UnknownIdentity, UnknownPage

logger = logging.getLogger(__name__)


def _error(status: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app(detectors: Optional[DetectorSet] = None) -> FastAPI:
    """Build the app with *detectors* injected; document state starts empty."""
    deps.configure(detectors)

    app = FastAPI(
        title="pageredact",
        version=__version__,
        description="PII detection merge, geometry location and irreversible page redaction",
    )

    @app.exception_handler(UnknownPage)
    async def _unknown_page(request: Request, exc: UnknownPage):
        return _error(404, exc)

    @app.exception_handler(UnknownIdentity)
    async def _unknown_identity(request: Request, exc: UnknownIdentity):
        return _error(404, exc)

    @app.exception_handler(PageBusy)
    async def _page_busy(request: Request, exc: PageBusy):
        logger.warning(f"Rejected concurrent write: {exc}")
        return _error(409, exc)

    @app.exception_handler(InvalidGeometry)
    async def _invalid_geometry(request: Request, exc: InvalidGeometry):
        return _error(422, exc)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "version": __version__,
            "pattern_detector": deps.detectors.pattern is not None,
            "model_detector": deps.detectors.model is not None,
        }

    app.include_router(documents.router)
    app.include_router(regions.router)
    app.include_router(export.router)
    return app
