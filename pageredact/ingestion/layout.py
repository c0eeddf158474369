"""Layout ingestion: positioned text fragments from PDF pages or from
loosely-typed caller input, validated into :class:`LayoutFragment`."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import fitz  # PyMuPDF
from PIL import Image
from pydantic import ValidationError

from pageredact.errors import MalformedLayout
from pageredact.geometry.coordinates import PageTransform
from pageredact.models.schemas import (
    CoordinateSpace,
    Diagnostic,
    GeometricBox,
    LayoutFragment,
)

logger = logging.getLogger(__name__)


def page_transform_for(
    page: fitz.Page, scale: float = 1.0, device_pixel_ratio: float = 1.0,
) -> PageTransform:
    rect = page.rect
    return PageTransform(
        page_width=rect.width,
        page_height=rect.height,
        scale=scale,
        device_pixel_ratio=device_pixel_ratio,
    )


def render_page(page: fitz.Page, transform: PageTransform) -> Image.Image:
    """Rasterize *page* at the transform's effective scale."""
    s = transform.s
    pix = page.get_pixmap(matrix=fitz.Matrix(s, s), alpha=False)
    return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)


def layout_from_pdf_page(page: fitz.Page, transform: PageTransform) -> list[LayoutFragment]:
    """Text spans of *page* as raster-space fragments.

    Each fragment carries the raster x-extent of every glyph, read from
    PyMuPDF's per-character boxes, so matches inside a span can be
    narrowed to their real glyphs under proportional fonts.
    Non-horizontal lines (rotated watermarks, vertical margins) are
    skipped.  Boxes are converted page → raster through *transform*.
    """
    page_h = page.rect.height
    page_no = page.number + 1 if page.number is not None else 1
    fragments: list[LayoutFragment] = []
    skipped = 0

    def to_raster(x0: float, y0: float, x1: float, y1: float) -> GeometricBox:
        # PyMuPDF rects are top-left based; page space is bottom-left.
        return transform.page_to_raster(GeometricBox(
            x=x0, y=page_h - y1, w=x1 - x0, h=y1 - y0,
            page=page_no, space=CoordinateSpace.PAGE,
        ))

    for block in page.get_text("rawdict").get("blocks", []):
        if block.get("type", 0) != 0:
            continue
        for line in block.get("lines", []):
            dx, dy = line.get("dir", (1.0, 0.0))
            if abs(dy) > 1e-3 or dx <= 0:
                skipped += 1
                continue
            for span in line.get("spans", []):
                chars = span.get("chars", [])
                text = "".join(ch["c"] for ch in chars)
                if not text.strip():
                    continue
                rb = to_raster(*span["bbox"])
                if rb.is_degenerate():
                    skipped += 1
                    continue
                edges = None
                if len(text) == len(chars):
                    edges = []
                    for ch in chars:
                        cb = to_raster(*ch["bbox"])
                        edges.append((cb.x, cb.x + cb.w))
                fragments.append(LayoutFragment(
                    text=text, x=rb.x, y=rb.y, width=rb.w, height=rb.h,
                    char_edges=edges,
                ))

    if skipped:
        logger.debug("Page %d: skipped %d rotated or empty span(s)", page_no, skipped)
    return fragments


def parse_layout(
    raw_items: Optional[Iterable[Any]],
    page: Optional[int] = None,
) -> tuple[list[LayoutFragment], list[Diagnostic]]:
    """Validate caller-supplied layout items.

    Items that are not ``{text, x, y, width, height}`` with finite
    numbers, or whose width/height is not positive, are skipped; each
    skip is reported as a MALFORMED_LAYOUT diagnostic.
    """
    fragments: list[LayoutFragment] = []
    diagnostics: list[Diagnostic] = []
    for idx, item in enumerate(raw_items or ()):
        try:
            frag = item if isinstance(item, LayoutFragment) else LayoutFragment.model_validate(item)
        except ValidationError as exc:
            reason = exc.errors()[0].get("msg", "invalid") if exc.errors() else "invalid"
            diagnostics.append(MalformedLayout(f"layout item {idx}: {reason}", page).to_diagnostic())
            continue
        if frag.width <= 0 or frag.height <= 0:
            diagnostics.append(MalformedLayout(f"layout item {idx}: non-positive size", page).to_diagnostic())
            continue
        fragments.append(frag)

    if diagnostics:
        logger.warning(
            "Page %s: skipped %d malformed layout item(s)", page, len(diagnostics),
            extra={"page": page, "count": len(diagnostics)},
        )
    return fragments, diagnostics
