"""Export painter: burns redaction boxes into page rasters and writes
image-only output.

Every box becomes a fully opaque fill in an RGB copy of the raster, and
exported documents are rebuilt from those pixels alone: no text layer,
vector content or source metadata survives.
"""

from __future__ import annotations

import io
import logging
import math
from typing import Optional, Sequence, Union

import fitz  # PyMuPDF
from PIL import Image

from pageredact.config import config
from pageredact.geometry.bbox_utils import clip_box, expand_box
from pageredact.geometry.coordinates import PageTransform
from pageredact.models.schemas import CoordinateSpace, GeometricBox

logger = logging.getLogger(__name__)

RasterInput = Union[Image.Image, bytes]


# ---------------------------------------------------------------------------
# Raster helpers
# ---------------------------------------------------------------------------

def _open_raster(raster: RasterInput) -> Image.Image:
    if isinstance(raster, (bytes, bytearray)):
        img = Image.open(io.BytesIO(raster))
        img.load()
        return img
    return raster


def flatten(img: Image.Image) -> Image.Image:
    """RGB copy of *img* with any transparency composited onto white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def clean_copy(img: Image.Image) -> Image.Image:
    """Pixel-only copy: no EXIF, ICC profile, or text chunks carried over."""
    rgb = img if img.mode == "RGB" else flatten(img)
    return Image.frombytes("RGB", rgb.size, rgb.tobytes())


def _pixel_rect(box: GeometricBox) -> tuple[int, int, int, int]:
    """Integer rectangle covering *box*, rounded outward."""
    return (
        int(math.floor(box.x)),
        int(math.floor(box.y)),
        int(math.ceil(box.x1)),
        int(math.ceil(box.y1)),
    )


# ---------------------------------------------------------------------------
# Painting
# ---------------------------------------------------------------------------

def paint(
    page: int,
    boxes: Sequence[GeometricBox],
    raster: RasterInput,
    transform: Optional[PageTransform] = None,
    fill: Optional[tuple[int, int, int]] = None,
    padding: Optional[float] = None,
) -> Image.Image:
    """Fill every box of *page* on *raster* with an opaque colour.

    Boxes outside raster space are converted with *transform*; without
    one they are skipped.  Boxes are padded, clipped to the image, and
    dropped when degenerate.  An empty box list is valid and yields a
    clean flattened copy of the raster.
    """
    fill = tuple(fill) if fill is not None else tuple(config.export_fill_color)
    padding = config.export_padding if padding is None else padding

    img = clean_copy(flatten(_open_raster(raster)))
    width, height = img.size

    painted = rejected = 0
    for box in boxes:
        if box.page != page:
            logger.debug("Skipping box for page %d while painting page %d", box.page, page)
            continue
        if box.space != CoordinateSpace.RASTER:
            if transform is None:
                logger.warning("Box in %s space with no transform; skipped", box.space.value)
                rejected += 1
                continue
            box = transform.convert(box, CoordinateSpace.RASTER)
        if box.is_degenerate():
            rejected += 1
            continue
        box = clip_box(expand_box(box, padding), width, height)
        if box.is_degenerate():
            rejected += 1
            continue
        img.paste(fill, _pixel_rect(box))
        painted += 1

    logger.info(
        "Page %d: painted %d box(es), rejected %d", page, painted, rejected,
        extra={"page": page, "count": painted},
    )
    return img


# ---------------------------------------------------------------------------
# Output encoders
# ---------------------------------------------------------------------------

def export_image(raster: RasterInput, fmt: str = "PNG") -> bytes:
    """Re-encode a flattened, metadata-free copy of *raster*."""
    img = clean_copy(flatten(_open_raster(raster)))
    buf = io.BytesIO()
    try:
        if fmt.upper() in ("JPG", "JPEG"):
            img.save(buf, "JPEG", quality=95)
        else:
            img.save(buf, fmt.upper())
    finally:
        img.close()
    return buf.getvalue()


def export_pdf(
    rasters: Sequence[RasterInput],
    page_sizes: Optional[Sequence[tuple[float, float]]] = None,
    title: Optional[str] = None,
) -> bytes:
    """Build a new PDF whose pages are nothing but the given rasters.

    *page_sizes* gives each output page's size in points; by default a
    page is as many points wide and high as its raster has pixels.
    """
    if not rasters:
        raise ValueError("nothing to export: no page rasters given")
    if page_sizes is not None and len(page_sizes) != len(rasters):
        raise ValueError("page_sizes must match the number of rasters")

    pdf_doc = fitz.open()
    try:
        for i, raster in enumerate(rasters):
            png = export_image(raster, "PNG")
            if page_sizes is not None:
                w, h = page_sizes[i]
            else:
                with Image.open(io.BytesIO(png)) as probe:
                    w, h = probe.size
            pdf_page = pdf_doc.new_page(width=w, height=h)
            pdf_page.insert_image(pdf_page.rect, stream=png)

        pdf_doc.set_metadata({"title": title} if title else {})
        pdf_doc.del_xml_metadata()
        data = pdf_doc.tobytes(garbage=3, deflate=True)
    finally:
        pdf_doc.close()

    logger.info("Exported %d flattened page(s) to PDF (%d bytes)", len(rasters), len(data))
    return data


def export_document(
    state,
    rasters: Sequence[RasterInput],
    transforms: Optional[Sequence[Optional[PageTransform]]] = None,
    page_sizes: Optional[Sequence[tuple[float, float]]] = None,
    title: Optional[str] = None,
) -> bytes:
    """Paint each page's combined boxes from *state* and export a PDF.

    *rasters* holds one rendered raster per page, in page order.
    """
    if len(rasters) != state.page_count:
        raise ValueError(f"expected {state.page_count} raster(s), got {len(rasters)}")
    painted = []
    for page, raster in enumerate(rasters, start=1):
        transform = transforms[page - 1] if transforms else None
        painted.append(paint(page, state.combined_boxes(page), raster, transform=transform))
    return export_pdf(painted, page_sizes=page_sizes, title=title)
