"""Pydantic data models for the redaction core."""

from __future__ import annotations

import enum
import math
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class DetectionSource(str, enum.Enum):
    """Which detector family produced the finding."""
    PATTERN = "PATTERN"    # deterministic rule matcher
    MODEL = "MODEL"        # statistical entity model


class CoordinateSpace(str, enum.Enum):
    """The four coordinate systems a box can live in."""
    PAGE = "PAGE"          # bottom-left origin, document units
    RASTER = "RASTER"      # top-left origin, display pixels
    OCR = "OCR"            # top-left origin, pixels of the OCR bitmap
    EXPORT = "EXPORT"      # bottom-left origin, output page units


class KindPreference(str, enum.Enum):
    """Whose taxonomy label wins when two sources agree on a finding."""
    PATTERN = "PATTERN"
    MODEL = "MODEL"
    CONFIDENCE = "CONFIDENCE"   # label of whichever candidate survives


class DiagnosticKind(str, enum.Enum):
    INVALID_GEOMETRY = "INVALID_GEOMETRY"
    UNLOCATABLE_DETECTION = "UNLOCATABLE_DETECTION"
    DETECTOR_UNAVAILABLE = "DETECTOR_UNAVAILABLE"
    MALFORMED_LAYOUT = "MALFORMED_LAYOUT"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

class GeometricBox(BaseModel):
    """Axis-aligned rectangle in one of the coordinate spaces.

    ``(x, y)`` is the corner nearest the space's origin: top-left in
    raster/OCR space, bottom-left in page/export space.
    """
    x: float
    y: float
    w: float
    h: float
    page: int
    space: CoordinateSpace = CoordinateSpace.RASTER

    @property
    def x1(self) -> float:
        return self.x + self.w

    @property
    def y1(self) -> float:
        return self.y + self.h

    def is_degenerate(self) -> bool:
        """True for NaN/inf coordinates or a non-positive width/height."""
        values = (self.x, self.y, self.w, self.h)
        if any(math.isnan(v) or math.isinf(v) for v in values):
            return True
        return self.w <= 0 or self.h <= 0


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class Span(BaseModel):
    """Half-open character range ``[start, end)`` in the scanned text."""
    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "Span":
        if self.end < self.start:
            raise ValueError(f"span end {self.end} precedes start {self.start}")
        return self

    def intersects(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end


class Detection(BaseModel):
    """A single finding emitted by a detector. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    text: str
    kind: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: DetectionSource
    span: Optional[Span] = None


class NormalizedDetection(Detection):
    """Detection plus the comparison views computed by the normalizer."""
    normalized_text: str = ""
    digit_projection: str = ""


class MergedDetections(BaseModel):
    """Output of ``detect()`` for one text unit."""
    page: Optional[int] = None
    detections: list[NormalizedDetection] = []
    model_available: bool = True
    diagnostics: list["Diagnostic"] = []


class Diagnostic(BaseModel):
    """A non-fatal, page-local problem recorded instead of raised."""
    kind: DiagnosticKind
    page: Optional[int] = None
    message: str = ""


# ---------------------------------------------------------------------------
# External boundary shapes (strict: unknown keys and NaN are rejected)
# ---------------------------------------------------------------------------

class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)


class PatternHit(_Strict):
    """Raw output item of a pattern detector."""
    text: str
    kind: str


class EntityHit(_Strict):
    """Raw output item of a statistical entity detector."""
    text: str
    kind: str
    score: float
    start: int = Field(ge=0)
    end: int = Field(ge=0)


class LayoutFragment(_Strict):
    """A positioned run of text from the native text layer, in raster space.

    ``char_edges`` optionally holds the ``(x0, x1)`` raster extent of each
    character of ``text``; it is what lets a match inside a long run be
    narrowed to its own glyphs.
    """
    text: str
    x: float
    y: float
    width: float
    height: float
    char_edges: Optional[list[tuple[float, float]]] = None

    @model_validator(mode="after")
    def _edges_per_char(self) -> "LayoutFragment":
        if self.char_edges is not None and len(self.char_edges) != len(self.text):
            raise ValueError("char_edges must have one entry per character of text")
        return self


class OcrWord(_Strict):
    """One recognised word with its offsets inside the OCR transcript."""
    text: str
    x: float
    y: float
    w: float
    h: float
    offset_start: int = Field(ge=0, validation_alias=AliasChoices("offset_start", "offsetStart"))
    offset_end: int = Field(ge=0, validation_alias=AliasChoices("offset_end", "offsetEnd"))
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class OcrResult(_Strict):
    transcript: str
    words: list[OcrWord] = []
    width: Optional[int] = None      # bitmap size fed to OCR, in pixels
    height: Optional[int] = None


# ---------------------------------------------------------------------------
# Redaction state
# ---------------------------------------------------------------------------

class RedactionItem(GeometricBox):
    """A located, automatically detected region that the user may toggle."""
    identity: str
    text: str = ""
    kind: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: DetectionSource
    enabled: bool = True

    def to_box(self) -> GeometricBox:
        return GeometricBox(
            x=self.x, y=self.y, w=self.w, h=self.h,
            page=self.page, space=self.space,
        )


class LocateResult(BaseModel):
    """Output of ``locate()`` for one page."""
    page: int
    boxes: list[RedactionItem] = []
    unlocatable: list[NormalizedDetection] = []
    rejected: int = 0                    # degenerate boxes dropped
    diagnostics: list[Diagnostic] = []


# ---------------------------------------------------------------------------
# API request / response schemas
# ---------------------------------------------------------------------------

class CreateDocumentRequest(BaseModel):
    page_count: int = Field(ge=1)


class DocumentSummary(BaseModel):
    doc_id: str
    page_count: int
    active_page: int
    auto_items: int
    manual_boxes: int


class ScanRequest(BaseModel):
    """Input for scanning one page: a text layer or an OCR result."""
    text: Optional[str] = None
    layout: Optional[list[dict]] = None
    ocr: Optional[OcrResult] = None
    raster_width: Optional[int] = None
    raster_height: Optional[int] = None
    pattern_enabled: Optional[bool] = None
    model_enabled: Optional[bool] = None
    min_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ScanResponse(BaseModel):
    page: int
    boxes: list[RedactionItem]
    unlocatable_count: int
    model_available: bool
    diagnostics: list[Diagnostic] = []


class ActivePageRequest(BaseModel):
    page: int = Field(ge=1)


class ToggleRequest(BaseModel):
    enabled: bool


class ManualBoxRequest(BaseModel):
    x: float
    y: float
    w: float = Field(gt=0)
    h: float = Field(gt=0)


MergedDetections.model_rebuild()
