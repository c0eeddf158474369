"""Bounding-box helpers shared by the locator, the page state and the
export painter."""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional

from pageredact.models.schemas import CoordinateSpace, GeometricBox
from pageredact.text_utils import normalize_for_matching


def union_boxes(boxes: Iterable[GeometricBox]) -> Optional[GeometricBox]:
    """Smallest box covering every box in *boxes* (None when empty).

    All boxes must share a page and a coordinate space; the first one
    decides both.
    """
    boxes = list(boxes)
    if not boxes:
        return None
    x0 = min(b.x for b in boxes)
    y0 = min(b.y for b in boxes)
    x1 = max(b.x1 for b in boxes)
    y1 = max(b.y1 for b in boxes)
    first = boxes[0]
    return GeometricBox(x=x0, y=y0, w=x1 - x0, h=y1 - y0, page=first.page, space=first.space)


def expand_box(box: GeometricBox, padding: float) -> GeometricBox:
    if padding <= 0:
        return box
    return box.model_copy(update={
        "x": box.x - padding,
        "y": box.y - padding,
        "w": box.w + 2 * padding,
        "h": box.h + 2 * padding,
    })


def clip_box(box: GeometricBox, width: float, height: float) -> GeometricBox:
    """Clamp *box* to ``[0, width] × [0, height]``.

    A box lying fully outside the area comes back with zero width or
    height, which :meth:`GeometricBox.is_degenerate` flags.
    """
    x0 = max(0.0, min(box.x, width))
    y0 = max(0.0, min(box.y, height))
    x1 = max(0.0, min(box.x1, width))
    y1 = max(0.0, min(box.y1, height))
    return box.model_copy(update={"x": x0, "y": y0, "w": x1 - x0, "h": y1 - y0})


def boxes_overlap(a: GeometricBox, b: GeometricBox) -> bool:
    return a.x < b.x1 and b.x < a.x1 and a.y < b.y1 and b.y < a.y1


def compute_identity(
    page: int,
    x: float,
    y: float,
    text: str,
    precision: int = 0,
    normalized: bool = False,
) -> str:
    """Deterministic identity of a located detection.

    A pure function of ``(page, round(x), round(y), normalized text)``,
    so a re-scan of unchanged input reproduces the same identity.
    *x*/*y* are raster-space coordinates.
    """
    norm = text if normalized else normalize_for_matching(text)
    rx = round(x, precision)
    ry = round(y, precision)
    # -0.0 and 0.0 must hash alike
    key = f"{page}:{rx + 0.0:.{precision}f}:{ry + 0.0:.{precision}f}:{norm}"
    return hashlib.sha1(key.encode("utf-8", "surrogatepass")).hexdigest()[:16]


def raster_box(x: float, y: float, w: float, h: float, page: int) -> GeometricBox:
    return GeometricBox(x=x, y=y, w=w, h=h, page=page, space=CoordinateSpace.RASTER)
