"""Export: burn a page's redaction boxes into its raster."""

from __future__ import annotations

import asyncio
import io
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
from PIL import Image, UnidentifiedImageError

from pageredact.api.deps import get_doc
from pageredact.export.painter import export_image, paint

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["export"])

_MAX_RASTER_BYTES = 64 * 1024 * 1024


@router.post("/documents/{doc_id}/pages/{page}/paint")
async def paint_page(doc_id: str, page: int, request: Request) -> Response:
    """Body: the rendered page as PNG (or any Pillow-readable image).

    Returns a flattened PNG with every enabled box filled opaque.
    """
    doc = get_doc(doc_id)
    boxes = doc.combined_boxes(page)

    body = await request.body()
    if not body:
        raise HTTPException(400, "Request body must contain the page raster")
    if len(body) > _MAX_RASTER_BYTES:
        raise HTTPException(413, "Raster too large")

    def _run() -> bytes:
        with Image.open(io.BytesIO(body)) as raster:
            raster.load()
            painted = paint(page, boxes, raster)
        try:
            return export_image(painted, "PNG")
        finally:
            painted.close()

    try:
        png = await asyncio.to_thread(_run)
    except UnidentifiedImageError:
        raise HTTPException(400, "Request body is not a readable image") from None

    logger.info(f"Painted page {page} of {doc_id} with {len(boxes)} box(es)")
    return Response(content=png, media_type="image/png")
