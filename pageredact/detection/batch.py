"""Page scanning: detect → locate → record for one page, and a bounded
parallel runner for many pages with page-granular cancellation."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional, Sequence

from pageredact.detection.cache import DetectionCache
from pageredact.detection.detectors import DetectorSet
from pageredact.detection.pipeline import DetectOptions, detect
from pageredact.geometry.locator import GeometrySource, OcrSource, TextLayerSource, locate
from pageredact.models.schemas import (
    Diagnostic,
    LayoutFragment,
    NormalizedDetection,
    OcrResult,
    RedactionItem,
)
from pageredact.state.store import DocumentState

logger = logging.getLogger(__name__)


@dataclass
class PageInput:
    """Everything needed to scan one page.

    With an OCR result the transcript is the text that gets scanned and
    the OCR words give the geometry; otherwise *text* (or the fragments
    joined by spaces) is scanned and the fragments give the geometry.
    """
    page: int
    text: Optional[str] = None
    fragments: Sequence[LayoutFragment] = field(default_factory=list)
    ocr: Optional[OcrResult] = None
    raster_width: Optional[float] = None
    raster_height: Optional[float] = None

    def scan_text(self) -> str:
        if self.ocr is not None:
            return self.ocr.transcript
        if self.text is not None:
            return self.text
        return " ".join(f.text for f in self.fragments)

    def geometry_source(self) -> GeometrySource:
        if self.ocr is not None:
            return OcrSource(self.ocr, self.raster_width, self.raster_height)
        return TextLayerSource(list(self.fragments))


@dataclass
class PageScan:
    page: int
    items: list[RedactionItem]
    unlocatable: list[NormalizedDetection]
    model_available: bool
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass
class BatchReport:
    completed: dict[int, PageScan] = field(default_factory=dict)
    failed: dict[int, str] = field(default_factory=dict)
    cancelled: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


def scan_page(
    state: DocumentState,
    page_input: PageInput,
    detectors: DetectorSet,
    options: Optional[DetectOptions] = None,
    *,
    identity_precision: int = 0,
    cache: Optional[DetectionCache] = None,
    cancel: Optional[threading.Event] = None,
) -> Optional[PageScan]:
    """Run one detection pass on a page and commit it to *state*.

    Holds the page's writer slot for the whole pass, so a concurrent
    pass on the same page raises :class:`~pageredact.errors.PageBusy`.
    Returns None, leaving the page untouched, when *cancel* is set
    before the result is committed.
    """
    page = page_input.page
    with state.page_writer(page):
        merged = detect(
            page_input.scan_text(), options, detectors,
            page=page, doc_id=state.doc_id, cache=cache,
        )
        located = locate(
            page, merged, page_input.geometry_source(),
            identity_precision=identity_precision,
        )
        if cancel is not None and cancel.is_set():
            logger.info("Page %d: cancelled before commit", page)
            return None
        items = state.record_auto_detections(page, located.boxes)

    return PageScan(
        page=page,
        items=items,
        unlocatable=located.unlocatable,
        model_available=merged.model_available,
        diagnostics=merged.diagnostics + located.diagnostics,
    )


def scan_pages(
    state: DocumentState,
    inputs: Sequence[PageInput],
    detectors: DetectorSet,
    options: Optional[DetectOptions] = None,
    *,
    max_workers: Optional[int] = None,
    identity_precision: int = 0,
    cache: Optional[DetectionCache] = None,
    cancel: Optional[threading.Event] = None,
) -> BatchReport:
    """Scan many pages on a bounded worker pool.

    A failure on one page is recorded in the report and never stops the
    others.  Setting *cancel* stops pages that have not committed yet;
    pages already committed keep their state.
    """
    report = BatchReport()
    if not inputs:
        return report

    if max_workers is None:
        from pageredact.config import config
        max_workers = config.max_workers
    workers = max(1, min(max_workers, len(inputs)))
    t0 = time.perf_counter()

    def _scan_one(page_input: PageInput) -> Optional[PageScan]:
        if cancel is not None and cancel.is_set():
            return None
        return scan_page(
            state, page_input, detectors, options,
            identity_precision=identity_precision, cache=cache, cancel=cancel,
        )

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(_scan_one, pi): pi.page for pi in inputs}
        for future in as_completed(futures):
            page = futures[future]
            try:
                result = future.result()
            except CancelledError:
                report.cancelled.append(page)
                continue
            except Exception as exc:
                report.failed[page] = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "Page %d failed: %s", page, exc, exc_info=True,
                    extra={"page": page, "doc_id": state.doc_id, "error_type": type(exc).__name__},
                )
                continue

            if result is None:
                report.cancelled.append(page)
            else:
                report.completed[page] = result

            if cancel is not None and cancel.is_set():
                for f in futures:
                    f.cancel()

    report.cancelled.sort()
    logger.info(
        "Batch: %d completed, %d failed, %d cancelled in %.0f ms",
        len(report.completed), len(report.failed), len(report.cancelled),
        (time.perf_counter() - t0) * 1000,
        extra={"doc_id": state.doc_id},
    )
    return report
