"""Detection merge: fuses findings from every detector into one
de-duplicated, confidence-ranked list per text unit, with cross-source
confidence fusion and a configurable label tie-break.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from pageredact.detection.normalizer import normalize_detections
from pageredact.models.schemas import (
    Detection,
    DetectionSource,
    KindPreference,
    NormalizedDetection,
)

logger = logging.getLogger(__name__)

DEFAULT_FUSION_CEILING: float = 0.99
"""Independent agreement raises certainty but never to 1.0."""

DEFAULT_CONTAINMENT_MIN_LENGTH: int = 3
"""Containment counts only when the shorter string is longer than this."""

_PROXIMITY_BOOST_FACTOR: float = 1.2


# ---------------------------------------------------------------------------
# Confidence fusion
# ---------------------------------------------------------------------------

def combine_confidences(a: float, b: float, ceiling: float = DEFAULT_FUSION_CEILING) -> float:
    """Fuse two independent confidences: ``1 − (1−a)(1−b)``, capped.

    The cap never pulls the result below ``max(a, b)``, so fusion is
    monotone even when one input already exceeds the ceiling.
    """
    fused = 1.0 - (1.0 - a) * (1.0 - b)
    return max(a, b, min(fused, ceiling))


# ---------------------------------------------------------------------------
# Overlap test
# ---------------------------------------------------------------------------

def is_overlapping(
    a: NormalizedDetection,
    b: NormalizedDetection,
    containment_min_length: int = DEFAULT_CONTAINMENT_MIN_LENGTH,
) -> bool:
    """True when *a* and *b* describe the same finding.

    Identical normalized text, guarded containment, equal digit
    projections (numeric IDs written with different punctuation), or
    intersecting spans.
    """
    na, nb = a.normalized_text, b.normalized_text
    if na and na == nb:
        return True

    if na and nb:
        shorter, longer = (na, nb) if len(na) <= len(nb) else (nb, na)
        if len(shorter) > containment_min_length and shorter in longer:
            return True

    da, db = a.digit_projection, b.digit_projection
    if da and da == db and len(da) > containment_min_length:
        return True

    if a.span is not None and b.span is not None:
        return a.span.intersects(b.span)

    return False


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _position_order(candidates: list[NormalizedDetection]) -> list[NormalizedDetection]:
    """Sort span-bearing candidates by start inside the slots they occupy.

    Position-less candidates keep their arrival slot, so a list that
    carries no spans at all is returned unchanged.
    """
    slots = [i for i, c in enumerate(candidates) if c.span is not None]
    by_start = sorted((candidates[i] for i in slots), key=lambda c: c.span.start)
    ordered = list(candidates)
    for slot, cand in zip(slots, by_start):
        ordered[slot] = cand
    return ordered


def _preferred_kind(
    winner: NormalizedDetection,
    loser: NormalizedDetection,
    preference: KindPreference,
) -> str:
    if preference == KindPreference.CONFIDENCE:
        return winner.kind
    wanted = (
        DetectionSource.PATTERN if preference == KindPreference.PATTERN
        else DetectionSource.MODEL
    )
    if winner.source == wanted:
        return winner.kind
    if loser.source == wanted:
        return loser.kind
    return winner.kind


def merge_detections(
    *sources: Iterable[Detection],
    kind_preference: KindPreference = KindPreference.PATTERN,
    fusion_ceiling: float = DEFAULT_FUSION_CEILING,
    containment_min_length: int = DEFAULT_CONTAINMENT_MIN_LENGTH,
    min_confidence: float = 0.0,
    kinds: Optional[Sequence[str]] = None,
) -> list[NormalizedDetection]:
    """Merge detection lists from any number of detectors.

    Strategy:
    1. Normalize every candidate, in arrival order.
    2. Order span-bearing candidates by position.
    3. Walk the candidates against the accepted list; on the first
       overlap the higher confidence survives (ties keep the accepted
       item).
    4. When the two come from different sources and that source has not
       contributed to the accepted item yet, fuse confidences and pick
       the taxonomy label per *kind_preference*.
    5. Drop results below *min_confidence* or outside *kinds*, then rank
       by confidence (stable, so ties keep position order).
    """
    candidates: list[NormalizedDetection] = []
    for src in sources:
        candidates.extend(normalize_detections(src))
    if not candidates:
        return []

    ordered = _position_order(candidates)

    accepted: list[NormalizedDetection] = []
    contributors: list[set[DetectionSource]] = []
    replaced = discarded = fused = 0

    for cand in ordered:
        if not cand.normalized_text and cand.span is None:
            logger.debug("Skipping detection with empty text and no span: %r", cand.text)
            continue

        hit: Optional[int] = None
        for idx, existing in enumerate(accepted):
            if is_overlapping(cand, existing, containment_min_length):
                hit = idx
                break

        if hit is None:
            accepted.append(cand)
            contributors.append({cand.source})
            continue

        existing = accepted[hit]
        if cand.confidence > existing.confidence:
            winner, loser = cand, existing
            replaced += 1
        else:
            winner, loser = existing, cand
            discarded += 1

        if cand.source not in contributors[hit]:
            winner = winner.model_copy(update={
                "confidence": combine_confidences(
                    existing.confidence, cand.confidence, fusion_ceiling,
                ),
                "kind": _preferred_kind(winner, loser, kind_preference),
            })
            contributors[hit].add(cand.source)
            fused += 1
            logger.debug(
                "Fused %s %r with %s %r -> %s %.3f",
                existing.source.value, existing.text, cand.source.value, cand.text,
                winner.kind, winner.confidence,
            )

        accepted[hit] = winner

    result = accepted
    if min_confidence > 0.0:
        result = [d for d in result if d.confidence >= min_confidence]
    if kinds is not None:
        allowed = set(kinds)
        result = [d for d in result if d.kind in allowed]

    result = sorted(result, key=lambda d: -d.confidence)

    logger.info(
        "Merged %d candidate(s) -> %d detection(s) (%d replaced, %d discarded, %d fused)",
        len(candidates), len(result), replaced, discarded, fused,
    )
    return result


# ---------------------------------------------------------------------------
# Optional proximity boost
# ---------------------------------------------------------------------------

def boost_near_patterns(
    model_detections: Sequence[Detection],
    pattern_detections: Sequence[Detection],
    threshold: int = 50,
) -> list[Detection]:
    """Raise model confidence (×1.2, capped at 1.0) near a pattern hit.

    Only span-bearing detections take part; "near" means the character
    gap between the two spans is at most *threshold*.
    """
    anchors = [p.span for p in pattern_detections if p.span is not None]
    boosted: list[Detection] = []
    for det in model_detections:
        if det.span is None or not anchors:
            boosted.append(det)
            continue
        near = any(
            min(abs(det.span.start - a.end), abs(a.start - det.span.end)) <= threshold
            for a in anchors
        )
        if near:
            det = det.model_copy(update={
                "confidence": min(1.0, det.confidence * _PROXIMITY_BOOST_FACTOR),
            })
        boosted.append(det)
    return boosted


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def group_by_kind(detections: Iterable[Detection]) -> dict[str, list[Detection]]:
    grouped: dict[str, list[Detection]] = defaultdict(list)
    for det in detections:
        grouped[det.kind].append(det)
    return dict(grouped)


def detection_stats(detections: Sequence[Detection]) -> dict:
    """Totals by kind and by source, plus the mean confidence."""
    by_kind: dict[str, int] = defaultdict(int)
    by_source: dict[str, int] = defaultdict(int)
    total_conf = 0.0
    for det in detections:
        by_kind[det.kind] += 1
        by_source[det.source.value] += 1
        total_conf += det.confidence
    return {
        "total": len(detections),
        "by_kind": dict(by_kind),
        "by_source": dict(by_source),
        "avg_confidence": total_conf / len(detections) if detections else 0.0,
    }
