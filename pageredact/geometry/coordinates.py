"""Coordinate transforms between page, raster, OCR and export space.

Page and export space have a bottom-left origin and ``(x, y)`` is the
lower-left corner of a box; raster and OCR space have a top-left origin
and ``(x, y)`` is the upper-left corner.  Raster space is the hub: every
conversion goes through it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from pageredact.models.schemas import CoordinateSpace, GeometricBox


@dataclass(frozen=True)
class PageTransform:
    """Geometry of one rendered page.

    *page_width*/*page_height* are in document units, *scale* is the
    render factor and *device_pixel_ratio* the display density, so one
    document unit spans ``scale * device_pixel_ratio`` raster pixels.
    *ocr_width*/*ocr_height* give the bitmap fed to OCR when it differs
    from the raster.
    """
    page_width: float
    page_height: float
    scale: float = 1.0
    device_pixel_ratio: float = 1.0
    export_page_height: Optional[float] = None
    ocr_width: Optional[float] = None
    ocr_height: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("page_width", "page_height", "scale", "device_pixel_ratio"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        for name in ("export_page_height", "ocr_width", "ocr_height"):
            value = getattr(self, name)
            if value is not None and (not math.isfinite(value) or value <= 0):
                raise ValueError(f"{name} must be positive when given, got {value!r}")

    # ------------------------------------------------------------------
    # Derived sizes
    # ------------------------------------------------------------------

    @property
    def s(self) -> float:
        """Effective scale: raster pixels per document unit."""
        return self.scale * self.device_pixel_ratio

    @property
    def raster_width(self) -> float:
        return self.page_width * self.s

    @property
    def raster_height(self) -> float:
        return self.page_height * self.s

    @property
    def export_height(self) -> float:
        return self.export_page_height if self.export_page_height is not None else self.page_height

    def _ocr_ratio(self) -> tuple[float, float]:
        """Raster pixels per OCR pixel along x and y."""
        sx = self.raster_width / self.ocr_width if self.ocr_width else 1.0
        sy = self.raster_height / self.ocr_height if self.ocr_height else 1.0
        return sx, sy

    # ------------------------------------------------------------------
    # Page <-> raster
    # ------------------------------------------------------------------

    def page_to_raster(self, box: GeometricBox) -> GeometricBox:
        s = self.s
        h = box.h * s
        return GeometricBox(
            x=box.x * s,
            y=self.page_height * s - box.y * s - h,
            w=box.w * s,
            h=h,
            page=box.page,
            space=CoordinateSpace.RASTER,
        )

    def raster_to_page(self, box: GeometricBox) -> GeometricBox:
        s = self.s
        h = box.h / s
        return GeometricBox(
            x=box.x / s,
            y=self.page_height - box.y / s - h,
            w=box.w / s,
            h=h,
            page=box.page,
            space=CoordinateSpace.PAGE,
        )

    # ------------------------------------------------------------------
    # Raster <-> export
    # ------------------------------------------------------------------

    def raster_to_export(self, box: GeometricBox) -> GeometricBox:
        s = self.s
        return GeometricBox(
            x=box.x / s,
            y=self.export_height - (box.y / s + box.h / s),
            w=box.w / s,
            h=box.h / s,
            page=box.page,
            space=CoordinateSpace.EXPORT,
        )

    def export_to_raster(self, box: GeometricBox) -> GeometricBox:
        s = self.s
        return GeometricBox(
            x=box.x * s,
            y=(self.export_height - box.y - box.h) * s,
            w=box.w * s,
            h=box.h * s,
            page=box.page,
            space=CoordinateSpace.RASTER,
        )

    # ------------------------------------------------------------------
    # OCR <-> raster
    # ------------------------------------------------------------------

    def ocr_to_raster(self, box: GeometricBox) -> GeometricBox:
        sx, sy = self._ocr_ratio()
        return GeometricBox(
            x=box.x * sx, y=box.y * sy, w=box.w * sx, h=box.h * sy,
            page=box.page, space=CoordinateSpace.RASTER,
        )

    def raster_to_ocr(self, box: GeometricBox) -> GeometricBox:
        sx, sy = self._ocr_ratio()
        return GeometricBox(
            x=box.x / sx, y=box.y / sy, w=box.w / sx, h=box.h / sy,
            page=box.page, space=CoordinateSpace.OCR,
        )

    # ------------------------------------------------------------------
    # Generic conversion
    # ------------------------------------------------------------------

    def to_raster(self, box: GeometricBox) -> GeometricBox:
        if box.space == CoordinateSpace.RASTER:
            return box
        if box.space == CoordinateSpace.PAGE:
            return self.page_to_raster(box)
        if box.space == CoordinateSpace.EXPORT:
            return self.export_to_raster(box)
        return self.ocr_to_raster(box)

    def convert(self, box: GeometricBox, target: CoordinateSpace) -> GeometricBox:
        """Convert *box* into *target* space, routing through raster space."""
        if box.space == target:
            return box
        raster = self.to_raster(box)
        if target == CoordinateSpace.RASTER:
            return raster
        if target == CoordinateSpace.PAGE:
            return self.raster_to_page(raster)
        if target == CoordinateSpace.EXPORT:
            return self.raster_to_export(raster)
        return self.raster_to_ocr(raster)
