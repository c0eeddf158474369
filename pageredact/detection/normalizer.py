"""Detection normalizer: canonical comparison views for raw detections."""

from __future__ import annotations

from typing import Iterable

from pageredact.models.schemas import Detection, NormalizedDetection
from pageredact.text_utils import digits_only, normalize_for_matching


def normalize_detection(detection: Detection) -> NormalizedDetection:
    """Attach ``normalized_text`` and ``digit_projection`` to one detection.

    Already-normalized input is recomputed, so the result never depends
    on a stale view.
    """
    text = detection.text if isinstance(detection.text, str) else ""
    return NormalizedDetection(
        text=detection.text,
        kind=detection.kind,
        confidence=detection.confidence,
        source=detection.source,
        span=detection.span,
        normalized_text=normalize_for_matching(text),
        digit_projection=digits_only(text),
    )


def normalize_detections(detections: Iterable[Detection]) -> list[NormalizedDetection]:
    """Pure, order-preserving normalisation of a detection list."""
    return [normalize_detection(d) for d in detections]
