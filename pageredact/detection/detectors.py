"""Detector adapters: the boundary between opaque external detectors and
the merge pipeline.

Detector implementations are passed in explicitly through a
:class:`DetectorSet`; nothing here registers global state.  Raw output
is validated against the narrow boundary shapes and converted into
:class:`~pageredact.models.schemas.Detection` records.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Protocol, TypeVar

from pydantic import ValidationError

from pageredact.errors import DetectorUnavailable
from pageredact.models.schemas import (
    Detection,
    DetectionSource,
    EntityHit,
    PatternHit,
    Span,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Detector protocols
# ---------------------------------------------------------------------------

class PatternDetector(Protocol):
    """Returns ``[{text, kind}, ...]`` for a page of text."""

    def __call__(self, text: str) -> Iterable[Any]: ...


class StatisticalDetector(Protocol):
    """Returns ``[{text, kind, score, start, end}, ...]`` for a page of text."""

    def __call__(self, text: str) -> Iterable[Any]: ...


@dataclass(frozen=True)
class DetectorSet:
    """The detector implementations used by one pipeline call."""
    pattern: Optional[PatternDetector] = None
    model: Optional[StatisticalDetector] = None


# ---------------------------------------------------------------------------
# Raw output → Detection
# ---------------------------------------------------------------------------

# Short BIO-style tags emitted by common token-classification models.
_MODEL_LABEL_MAP: dict[str, str] = {
    "PER": "person",
    "PERSON": "person",
    "ORG": "organization",
    "LOC": "location",
    "GPE": "location",
    "MISC": "misc",
}


def map_model_label(label: str) -> str:
    """Map a model label (``B-PER``, ``I-ORG``, ``LOC``…) onto the taxonomy."""
    tag = label.strip()
    if len(tag) > 2 and tag[1] == "-" and tag[0] in "BIES":
        tag = tag[2:]
    return _MODEL_LABEL_MAP.get(tag.upper(), tag.lower())


def pattern_hits_to_detections(raw: Iterable[Any]) -> list[Detection]:
    """Convert pattern-detector output; confidence is fixed at 1.0."""
    out: list[Detection] = []
    for item in raw or ():
        try:
            hit = item if isinstance(item, PatternHit) else PatternHit.model_validate(item)
        except ValidationError as exc:
            logger.debug("Skipping malformed pattern hit %r: %s", item, exc)
            continue
        if not hit.text:
            continue
        out.append(Detection(
            text=hit.text,
            kind=hit.kind,
            confidence=1.0,
            source=DetectionSource.PATTERN,
        ))
    return out


def entities_to_detections(raw: Iterable[Any]) -> list[Detection]:
    """Convert statistical-model output, keeping its character span."""
    out: list[Detection] = []
    for item in raw or ():
        try:
            hit = item if isinstance(item, EntityHit) else EntityHit.model_validate(item)
            span = Span(start=hit.start, end=hit.end)
        except ValidationError as exc:
            logger.debug("Skipping malformed entity %r: %s", item, exc)
            continue
        if not hit.text:
            continue
        out.append(Detection(
            text=hit.text,
            kind=map_model_label(hit.kind),
            confidence=min(1.0, max(0.0, hit.score)),
            source=DetectionSource.MODEL,
            span=span,
        ))
    return out


# ---------------------------------------------------------------------------
# Bounded calls into slow external engines
# ---------------------------------------------------------------------------

class CallPool:
    """A worker pool for one kind of external engine.

    A call that times out keeps running in its worker thread and is
    tracked as *stuck* until it finishes.  Once every worker of the
    current executor is stuck, the executor is abandoned and a fresh one
    takes new calls, so a hung engine never queues healthy calls behind
    it.  At most *max_abandoned* stuck calls are tolerated; beyond that
    new calls are refused outright.
    """

    def __init__(self, name: str, max_workers: int = 4, max_abandoned: int = 16):
        self.name = name
        self.max_workers = max_workers
        self.max_abandoned = max_abandoned
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._generation = 0
        self._stuck: dict[Future, int] = {}

    @property
    def stuck(self) -> int:
        with self._lock:
            return len(self._stuck)

    def _current(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._generation += 1
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix=f"pageredact-{self.name}-{self._generation}",
                )
            return self._executor

    def _release(self, future: Future) -> None:
        with self._lock:
            self._stuck.pop(future, None)

    def _abandon(self, future: Future, generation: int) -> None:
        with self._lock:
            self._stuck[future] = generation
            future.add_done_callback(self._release)
            in_current = sum(1 for g in self._stuck.values() if g == self._generation)
            if self._executor is not None and in_current >= self.max_workers:
                logger.warning(
                    "All %d %s worker(s) are hung; starting a fresh pool (%d stuck call(s) leaked)",
                    self.max_workers, self.name, len(self._stuck),
                    extra={"count": len(self._stuck)},
                )
                self._executor.shutdown(wait=False)
                self._executor = None

    def call(self, fn: Callable[[Any], T], arg: Any, timeout_s: float, what: str) -> T:
        with self._lock:
            if len(self._stuck) >= self.max_abandoned:
                raise DetectorUnavailable(
                    f"{what} unavailable: {len(self._stuck)} earlier call(s) still hung"
                )
            executor = self._current()
            generation = self._generation
            future: Future = executor.submit(fn, arg)
        try:
            return future.result(timeout=timeout_s)
        except FutureTimeout:
            if not future.cancel():
                self._abandon(future, generation)
            raise DetectorUnavailable(f"{what} timed out after {timeout_s:.1f}s") from None
        except Exception as exc:
            raise DetectorUnavailable(f"{what} failed: {exc}") from exc


_pools: dict[str, CallPool] = {}
_pools_lock = threading.Lock()


def get_pool(name: str) -> CallPool:
    """The process-wide pool for *name* (``"model"``, ``"ocr"``…), created on first use."""
    with _pools_lock:
        pool = _pools.get(name)
        if pool is None:
            pool = _pools[name] = CallPool(name)
        return pool


def call_with_timeout(
    fn: Callable[[Any], T],
    arg: Any,
    timeout_s: float,
    what: str = "detector",
    pool: str = "model",
) -> T:
    """Run ``fn(arg)`` on the named worker pool, waiting at most *timeout_s*.

    Raises :class:`DetectorUnavailable` on timeout or on any failure
    inside *fn*.  A timed-out call keeps running in its worker thread;
    its result is discarded.  Each engine gets its own pool so a hung
    model never starves OCR.
    """
    return get_pool(pool).call(fn, arg, timeout_s, what)
