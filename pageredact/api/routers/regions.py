"""Page scanning, automatic-item toggles and manual boxes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from pageredact.api import deps
from pageredact.api.deps import get_doc
from pageredact.config import config
from pageredact.detection.batch import PageInput, scan_page
from pageredact.detection.pipeline import DetectOptions
from pageredact.errors import UnknownPage
from pageredact.ingestion.layout import parse_layout
from pageredact.models.schemas import (
    CoordinateSpace,
    GeometricBox,
    ManualBoxRequest,
    ScanRequest,
    ScanResponse,
    ToggleRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["regions"])


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------

@router.post("/documents/{doc_id}/pages/{page}/scan", response_model=ScanResponse)
async def scan(doc_id: str, page: int, req: ScanRequest) -> ScanResponse:
    """Detect, locate and record automatic items for one page.

    Send either ``text`` + ``layout`` (native text layer) or ``ocr``.
    """
    doc = get_doc(doc_id)
    if req.ocr is None and req.text is None and not req.layout:
        raise HTTPException(422, "Provide text/layout or an OCR result")

    fragments, layout_diags = parse_layout(req.layout, page=page)
    page_input = PageInput(
        page=page,
        text=req.text,
        fragments=fragments,
        ocr=req.ocr,
        raster_width=req.raster_width,
        raster_height=req.raster_height,
    )
    options = DetectOptions.from_config(
        pattern_enabled=req.pattern_enabled,
        model_enabled=req.model_enabled,
        min_confidence=req.min_confidence,
    )

    result = await asyncio.to_thread(
        scan_page, doc, page_input, deps.detectors, options,
        identity_precision=config.identity_precision, cache=deps.cache,
    )
    return ScanResponse(
        page=page,
        boxes=result.items,
        unlocatable_count=len(result.unlocatable),
        model_available=result.model_available,
        diagnostics=layout_diags + result.diagnostics,
    )


# ---------------------------------------------------------------------------
# Automatic items
# ---------------------------------------------------------------------------

@router.put("/documents/{doc_id}/regions/{identity}")
async def toggle_region(doc_id: str, identity: str, req: ToggleRequest) -> dict[str, Any]:
    doc = get_doc(doc_id)
    item = doc.toggle(identity, req.enabled)
    return {"status": "ok", "identity": identity, "enabled": item.enabled}


@router.get("/documents/{doc_id}/pages/{page}/boxes")
async def get_boxes(doc_id: str, page: int) -> dict[str, Any]:
    """The render/export box set plus the items and manual boxes behind it."""
    doc = get_doc(doc_id)
    return {
        "page": page,
        "boxes": [b.model_dump(mode="json") for b in doc.combined_boxes(page)],
        "items": [i.model_dump(mode="json") for i in doc.items(page)],
        "manual": [
            {"index": idx, **box.model_dump(mode="json")}
            for idx, box in doc.manual_boxes(page)
        ],
    }


# ---------------------------------------------------------------------------
# Manual boxes
# ---------------------------------------------------------------------------

@router.post("/documents/{doc_id}/pages/{page}/manual-boxes", status_code=201)
async def add_manual_box(doc_id: str, page: int, req: ManualBoxRequest) -> dict[str, Any]:
    doc = get_doc(doc_id)
    box = GeometricBox(x=req.x, y=req.y, w=req.w, h=req.h, page=page, space=CoordinateSpace.RASTER)
    index = doc.record_manual_box(page, box)
    return {"status": "ok", "page": page, "index": index}


@router.delete("/documents/{doc_id}/pages/{page}/manual-boxes/{index}")
async def delete_manual_box(doc_id: str, page: int, index: int) -> dict[str, Any]:
    doc = get_doc(doc_id)
    try:
        doc.delete_manual_box(page, index)
    except UnknownPage:
        raise
    except IndexError:
        raise HTTPException(404, f"Manual box {index} not found on page {page}") from None
    return {"status": "ok", "page": page, "index": index}
