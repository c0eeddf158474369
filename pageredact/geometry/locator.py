"""Geometry locator: maps merged detections onto raster-space boxes.

Two strategies, chosen by the geometry source handed in:

* **Text layer**: positioned fragments from the native text layer.  A
  fragment binds a detection on equality or guarded containment; when
  the detection sits inside a longer fragment the box is narrowed to
  the matched glyphs using the fragment's per-character extents, or
  covers the whole fragment when those are missing.
* **OCR**: a transcript plus word boxes carrying their transcript
  offsets.  Every occurrence of the detection is found in the
  transcript and the words it covers are unioned into one box.

Detections that produce no box are reported as unlocatable instead of
being dropped, and degenerate boxes never leave this module.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from pageredact.errors import InvalidGeometry, UnlocatableDetection
from pageredact.geometry.bbox_utils import compute_identity, raster_box, union_boxes
from pageredact.geometry.coordinates import PageTransform
from pageredact.models.schemas import (
    CoordinateSpace,
    Diagnostic,
    GeometricBox,
    LayoutFragment,
    LocateResult,
    MergedDetections,
    NormalizedDetection,
    OcrResult,
    OcrWord,
    RedactionItem,
)
from pageredact.text_utils import normalize_for_matching

logger = logging.getLogger(__name__)

_CONTAINMENT_MIN_LENGTH = 3


# ---------------------------------------------------------------------------
# Geometry sources
# ---------------------------------------------------------------------------

@dataclass
class TextLayerSource:
    """Native text-layer fragments, already in raster space."""
    fragments: Sequence[LayoutFragment] = field(default_factory=list)


@dataclass
class OcrSource:
    """An OCR result plus the raster size it must be scaled onto.

    When *raster_width*/*raster_height* are omitted, or the OCR result
    does not record its bitmap size, OCR pixels are taken 1:1 as raster
    pixels.
    """
    result: OcrResult
    raster_width: Optional[float] = None
    raster_height: Optional[float] = None

    def transform(self) -> Optional[PageTransform]:
        r = self.result
        if not (self.raster_width and self.raster_height and r.width and r.height):
            return None
        return PageTransform(
            page_width=self.raster_width,
            page_height=self.raster_height,
            ocr_width=r.width,
            ocr_height=r.height,
        )


GeometrySource = Union[TextLayerSource, OcrSource]


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------

def fragment_binds(
    fragment_norm: str,
    detection_norm: str,
    min_length: int = _CONTAINMENT_MIN_LENGTH,
) -> bool:
    """True when a fragment may carry a detection's geometry.

    Equal text always binds.  Containment in either direction binds only
    when the shorter of the two is longer than *min_length*.
    """
    if not fragment_norm or not detection_norm:
        return False
    if fragment_norm == detection_norm:
        return True
    if detection_norm in fragment_norm:
        return len(detection_norm) > min_length
    if fragment_norm in detection_norm:
        return len(fragment_norm) > min_length
    return False


def _flexible_pattern(text: str) -> Optional[re.Pattern]:
    """Case-insensitive pattern for *text* that tolerates any whitespace run."""
    tokens = text.split()
    if not tokens:
        return None
    return re.compile(r"\s+".join(re.escape(t) for t in tokens), re.IGNORECASE)


def find_occurrences(haystack: str, needle: str) -> list[tuple[int, int]]:
    """All non-overlapping ``(start, end)`` ranges of *needle* in *haystack*."""
    pattern = _flexible_pattern(needle)
    if pattern is None:
        return []
    return [(m.start(), m.end()) for m in pattern.finditer(haystack)]


# ---------------------------------------------------------------------------
# Text-layer mode
# ---------------------------------------------------------------------------

def _fragment_boxes(
    fragment: LayoutFragment,
    fragment_norm: str,
    det: NormalizedDetection,
    page: int,
) -> list[GeometricBox]:
    whole = raster_box(fragment.x, fragment.y, fragment.width, fragment.height, page)
    if fragment_norm == det.normalized_text or det.normalized_text not in fragment_norm:
        return [whole]

    # Detection inside a longer fragment: narrow to the matched glyphs.
    # Without per-character extents the whole fragment is covered.
    edges = fragment.char_edges
    if not edges:
        return [whole]
    hits = find_occurrences(fragment.text, det.text)
    if not hits:
        return [whole]
    boxes = []
    for start, end in hits:
        x0 = min(e[0] for e in edges[start:end])
        x1 = max(e[1] for e in edges[start:end])
        boxes.append(raster_box(x0, fragment.y, x1 - x0, fragment.height, page))
    return boxes


def _locate_text_layer(
    page: int,
    detections: Sequence[NormalizedDetection],
    fragments: Sequence[LayoutFragment],
) -> dict[int, list[GeometricBox]]:
    prepared = [
        (frag, normalize_for_matching(frag.text))
        for frag in fragments
        if frag.text and frag.text.strip()
    ]
    found: dict[int, list[GeometricBox]] = {}
    for i, det in enumerate(detections):
        boxes: list[GeometricBox] = []
        for frag, frag_norm in prepared:
            if fragment_binds(frag_norm, det.normalized_text):
                boxes.extend(_fragment_boxes(frag, frag_norm, det, page))
        found[i] = boxes
    return found


# ---------------------------------------------------------------------------
# OCR mode
# ---------------------------------------------------------------------------

class _WordIndex:
    """Offset-sorted OCR words with bisect lookup of the words a
    transcript range covers."""

    def __init__(self, words: Sequence[OcrWord], transcript_len: int):
        valid = []
        for w in words:
            if w.offset_end <= w.offset_start or w.offset_end > transcript_len:
                logger.debug("Skipping OCR word %r with bad offsets", w.text)
                continue
            if w.w <= 0 or w.h <= 0:
                logger.debug("Skipping OCR word %r with empty box", w.text)
                continue
            valid.append(w)
        self.words = sorted(valid, key=lambda w: (w.offset_start, w.offset_end))
        self._starts = [w.offset_start for w in self.words]
        self._max_len = max((w.offset_end - w.offset_start for w in self.words), default=0)

    def covering(self, start: int, end: int) -> list[OcrWord]:
        """Words whose ``[offset_start, offset_end)`` intersects ``[start, end)``."""
        hi = bisect.bisect_left(self._starts, end)
        lo = bisect.bisect_left(self._starts, start - self._max_len)
        return [w for w in self.words[lo:hi] if w.offset_end > start]


def _match_ranges(det: NormalizedDetection, transcript: str) -> list[tuple[int, int]]:
    span = det.span
    if span is not None and span.end <= len(transcript):
        if normalize_for_matching(transcript[span.start:span.end]) == det.normalized_text:
            return [(span.start, span.end)]
    return find_occurrences(transcript, det.text)


def _locate_ocr(
    page: int,
    detections: Sequence[NormalizedDetection],
    source: OcrSource,
) -> dict[int, list[GeometricBox]]:
    result = source.result
    index = _WordIndex(result.words, len(result.transcript))
    transform = source.transform()

    found: dict[int, list[GeometricBox]] = {}
    for i, det in enumerate(detections):
        boxes: list[GeometricBox] = []
        for start, end in _match_ranges(det, result.transcript):
            words = index.covering(start, end)
            box = union_boxes(
                GeometricBox(x=w.x, y=w.y, w=w.w, h=w.h, page=page, space=CoordinateSpace.OCR)
                for w in words
            )
            if box is None:
                continue
            if transform is not None:
                box = transform.ocr_to_raster(box)
            else:
                box = box.model_copy(update={"space": CoordinateSpace.RASTER})
            boxes.append(box)
        found[i] = boxes
    return found


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def locate(
    page: int,
    merged: Union[MergedDetections, Sequence[NormalizedDetection]],
    source: GeometrySource,
    *,
    identity_precision: int = 0,
) -> LocateResult:
    """Turn merged detections into identity-tagged raster boxes for *page*.

    Returns the located items (one per distinct identity), the
    detections that could not be placed, and the number of degenerate
    boxes rejected.
    """
    detections = list(merged.detections if isinstance(merged, MergedDetections) else merged)

    if isinstance(source, OcrSource):
        found = _locate_ocr(page, detections, source)
        mode = "ocr"
    else:
        found = _locate_text_layer(page, detections, source.fragments)
        mode = "text-layer"

    items: list[RedactionItem] = []
    seen: set[str] = set()
    unlocatable: list[NormalizedDetection] = []
    rejected = 0

    for i, det in enumerate(detections):
        placed = False
        for box in found.get(i, ()):
            if box.is_degenerate():
                rejected += 1
                logger.debug("Rejected degenerate box for %r on page %d: %s", det.text, page, box)
                continue
            placed = True
            identity = compute_identity(
                page, box.x, box.y, det.normalized_text,
                precision=identity_precision, normalized=True,
            )
            if identity in seen:
                continue
            seen.add(identity)
            items.append(RedactionItem(
                x=box.x, y=box.y, w=box.w, h=box.h,
                page=page, space=CoordinateSpace.RASTER,
                identity=identity,
                text=det.text,
                kind=det.kind,
                confidence=det.confidence,
                source=det.source,
            ))
        if not placed:
            unlocatable.append(det)

    diagnostics: list[Diagnostic] = []
    if rejected:
        diagnostics.append(
            InvalidGeometry(f"{rejected} degenerate box(es) rejected", page).to_diagnostic()
        )
    if unlocatable:
        diagnostics.append(UnlocatableDetection(
            f"{len(unlocatable)} of {len(detections)} detection(s) matched but unlocatable", page,
        ).to_diagnostic())
        logger.warning(
            "Page %d: %d detection(s) could not be located (%s mode)",
            page, len(unlocatable), mode,
            extra={"page": page, "count": len(unlocatable)},
        )

    logger.info(
        "Page %d: located %d box(es) for %d detection(s) (%s mode)",
        page, len(items), len(detections), mode,
    )
    return LocateResult(
        page=page,
        boxes=items,
        unlocatable=unlocatable,
        rejected=rejected,
        diagnostics=diagnostics,
    )
