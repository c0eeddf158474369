"""Detection pipeline: runs the injected detectors over one text unit and
merges their output into a single ranked list."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from pageredact.detection.cache import DetectionCache
from pageredact.detection.detectors import (
    DetectorSet,
    call_with_timeout,
    entities_to_detections,
    pattern_hits_to_detections,
)
from pageredact.detection.merge import boost_near_patterns, merge_detections
from pageredact.detection.windows import dedupe_across_windows, overlapping_windows
from pageredact.errors import DetectorUnavailable
from pageredact.models.schemas import Detection, KindPreference, MergedDetections

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectOptions:
    """Per-call detection and merge settings."""
    pattern_enabled: bool = True
    model_enabled: bool = True
    model_timeout_s: float = 10.0
    min_confidence: float = 0.0
    kinds: Optional[tuple[str, ...]] = None
    fusion_ceiling: float = 0.99
    kind_preference: KindPreference = KindPreference.PATTERN
    containment_min_length: int = 3
    proximity_boost: bool = False
    proximity_threshold: int = 50
    window_size: int = 512
    window_overlap: float = 0.25
    model_name: str = field(default="", compare=False)

    @classmethod
    def from_config(cls, cfg=None, **overrides) -> "DetectOptions":
        """Snapshot the detection settings of *cfg* (the global config by default).

        ``None`` values in *overrides* are ignored so request fields that
        were left unset fall back to the configured value.
        """
        if cfg is None:
            from pageredact.config import config as cfg
        values = dict(
            pattern_enabled=cfg.pattern_enabled,
            model_enabled=cfg.model_enabled,
            model_timeout_s=cfg.model_timeout_s,
            min_confidence=cfg.min_confidence,
            kinds=tuple(cfg.kinds) if cfg.kinds is not None else None,
            fusion_ceiling=cfg.fusion_ceiling,
            kind_preference=cfg.kind_preference,
            containment_min_length=cfg.containment_min_length,
            proximity_boost=cfg.proximity_boost,
            proximity_threshold=cfg.proximity_threshold,
            window_size=cfg.model_window_size,
            window_overlap=cfg.model_window_overlap,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def model_fingerprint(self) -> str:
        """Stable digest of the settings that influence cached model output."""
        payload = json.dumps(
            {
                "model_name": self.model_name,
                "timeout": self.model_timeout_s,
                "window": [self.window_size, self.window_overlap],
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode()).hexdigest()[:16]


def _run_model(
    text: str,
    detectors: DetectorSet,
    options: DetectOptions,
    cache: Optional[DetectionCache],
    doc_id: Optional[str],
    page: Optional[int],
) -> list[Detection]:
    cacheable = cache is not None and doc_id is not None and page is not None
    fingerprint = options.model_fingerprint()
    if cacheable:
        cached = cache.get(doc_id, page, text, fingerprint)
        if cached is not None:
            logger.debug("Model cache hit for %s page %s", doc_id, page)
            return cached

    if options.window_size and len(text) > options.window_size:
        windows = overlapping_windows(text, options.window_size, options.window_overlap)
        per_window = [
            entities_to_detections(call_with_timeout(
                detectors.model, w.text, options.model_timeout_s,
                what=f"statistical model (window {w.index + 1}/{len(windows)})",
            ))
            for w in windows
        ]
        dets = dedupe_across_windows(per_window, windows, len(text))
        logger.info(
            "Page %s: model ran over %d window(s), %d entity(ies) after dedup",
            page, len(windows), len(dets),
        )
    else:
        raw = call_with_timeout(
            detectors.model, text, options.model_timeout_s, what="statistical model",
        )
        dets = entities_to_detections(raw)
    if cacheable:
        cache.put(doc_id, page, text, dets, fingerprint)
    return dets


def detect(
    text: str,
    options: Optional[DetectOptions] = None,
    detectors: Optional[DetectorSet] = None,
    *,
    page: Optional[int] = None,
    doc_id: Optional[str] = None,
    cache: Optional[DetectionCache] = None,
) -> MergedDetections:
    """Run pattern and model detection on *text* and merge the results.

    A failing or slow statistical model degrades to pattern-only output:
    ``model_available`` is False and a DETECTOR_UNAVAILABLE diagnostic is
    attached.  Pattern-detector errors propagate to the caller.
    """
    options = options or DetectOptions()
    detectors = detectors or DetectorSet()
    t0 = time.perf_counter()

    if not isinstance(text, str) or not text.strip():
        return MergedDetections(page=page, model_available=False)

    pattern_dets: list[Detection] = []
    if options.pattern_enabled and detectors.pattern is not None:
        pattern_dets = pattern_hits_to_detections(detectors.pattern(text))

    model_dets: list[Detection] = []
    model_available = False
    diagnostics = []
    if options.model_enabled and detectors.model is not None:
        try:
            model_dets = _run_model(text, detectors, options, cache, doc_id, page)
            model_available = True
        except DetectorUnavailable as exc:
            exc.page = page
            diagnostics.append(exc.to_diagnostic())
            logger.warning(
                "Statistical model unavailable on page %s, continuing with patterns only: %s",
                page, exc,
                extra={"page": page, "doc_id": doc_id, "error_type": "DetectorUnavailable"},
            )

    if options.proximity_boost and model_dets and pattern_dets:
        model_dets = boost_near_patterns(model_dets, pattern_dets, options.proximity_threshold)

    merged = merge_detections(
        pattern_dets,
        model_dets,
        kind_preference=options.kind_preference,
        fusion_ceiling=options.fusion_ceiling,
        containment_min_length=options.containment_min_length,
        min_confidence=options.min_confidence,
        kinds=options.kinds,
    )

    elapsed_ms = (time.perf_counter() - t0) * 1000
    logger.info(
        "Page %s: %d pattern + %d model -> %d detection(s) in %.0f ms",
        page, len(pattern_dets), len(model_dets), len(merged), elapsed_ms,
        extra={"page": page, "doc_id": doc_id, "count": len(merged), "duration_ms": round(elapsed_ms, 1)},
    )
    return MergedDetections(
        page=page,
        detections=merged,
        model_available=model_available,
        diagnostics=diagnostics,
    )
