"""Overlapping text windows for statistical models with a bounded input size.

A long page is cut into windows that overlap by a fraction of their
size, so an entity cut at one window's edge is seen whole in the next.
Per-window spans are shifted back to page offsets and duplicates found
in more than one window are collapsed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from pageredact.models.schemas import Detection, Span

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextWindow:
    text: str
    start: int
    end: int
    index: int

    def cut_at_start(self) -> bool:
        return self.start > 0

    def cut_at_end(self, total: int) -> bool:
        return self.end < total


def overlapping_windows(text: str, size: int, overlap: float = 0.25) -> list[TextWindow]:
    """Split *text* into windows of at most *size* characters.

    Consecutive windows share ``overlap * size`` characters.  Text that
    fits in one window comes back as a single window.
    """
    if size <= 0:
        raise ValueError("window size must be positive")
    if not 0.0 <= overlap < 1.0:
        raise ValueError("window overlap must be in [0, 1)")
    if len(text) <= size:
        return [TextWindow(text, 0, len(text), 0)]

    stride = max(1, int(size * (1.0 - overlap)))
    windows: list[TextWindow] = []
    pos = 0
    while True:
        end = min(pos + size, len(text))
        windows.append(TextWindow(text[pos:end], pos, end, len(windows)))
        if end == len(text):
            break
        pos += stride
    logger.debug("Split %d chars into %d window(s) (size %d, overlap %.2f)",
                 len(text), len(windows), size, overlap)
    return windows


def _shift(det: Detection, window: TextWindow) -> Detection:
    if det.span is None:
        return det
    return det.model_copy(update={
        "span": Span(start=det.span.start + window.start, end=det.span.end + window.start),
    })


def _truncated(det: Detection, window: TextWindow, total: int) -> bool:
    """True when *det* touches a cut edge of its window and may be partial."""
    span = det.span
    if span is None:
        return False
    return (window.cut_at_start() and span.start <= 0) or (
        window.cut_at_end(total) and span.end >= len(window.text)
    )


def dedupe_across_windows(
    per_window: Sequence[Sequence[Detection]],
    windows: Sequence[TextWindow],
    total: int,
) -> list[Detection]:
    """Merge per-window model output into one page-offset list.

    Overlapping detections with the same text (case-insensitive) are one
    entity; the higher confidence wins.  A detection cut off by a window
    edge is dropped when an overlapping detection from another window
    was not cut off.
    """
    candidates: list[tuple[Detection, bool]] = []
    for dets, window in zip(per_window, windows):
        for det in dets:
            candidates.append((_shift(det, window), _truncated(det, window, total)))
    candidates.sort(key=lambda c: (c[0].span.start if c[0].span else -1, c[1]))

    kept: list[tuple[Detection, bool]] = []
    for det, truncated in candidates:
        duplicate = False
        for i, (other, other_truncated) in enumerate(kept):
            if det.span is None or other.span is None or not det.span.intersects(other.span):
                continue
            if det.text.casefold() == other.text.casefold():
                if det.confidence > other.confidence:
                    kept[i] = (det, truncated and other_truncated)
                duplicate = True
                break
            if truncated and not other_truncated:
                duplicate = True
                break
            if other_truncated and not truncated:
                kept[i] = (det, False)
                duplicate = True
                break
        if not duplicate:
            kept.append((det, truncated))

    out = [det for det, _ in kept]
    if len(out) != len(candidates):
        logger.debug("Collapsed %d windowed detection(s) to %d", len(candidates), len(out))
    return out
