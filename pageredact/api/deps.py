"""Shared state and helpers used by all API routers."""

from __future__ import annotations

import importlib
import logging
from typing import Optional

from fastapi import HTTPException

from pageredact.config import config
from pageredact.detection.cache import DetectionCache
from pageredact.detection.detectors import DetectorSet
from pageredact.state.store import DocumentState

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singleton state  (set by create_app, read everywhere)
# ---------------------------------------------------------------------------
documents: dict[str, DocumentState] = {}
detectors: DetectorSet = DetectorSet()
cache: DetectionCache = DetectionCache(config.cache_max_age_s, config.cache_max_entries)


def configure(detector_set: Optional[DetectorSet] = None) -> None:
    """Install the detectors and start from an empty document table."""
    global detectors, cache
    detectors = detector_set or DetectorSet()
    cache = DetectionCache(config.cache_max_age_s, config.cache_max_entries)
    documents.clear()


def load_detectors(factory: str) -> DetectorSet:
    """Build a DetectorSet from a ``"package.module:callable"`` reference."""
    module_name, _, attr = factory.partition(":")
    if not module_name or not attr:
        raise ValueError(f"detector factory must look like 'module:callable', got {factory!r}")
    module = importlib.import_module(module_name)
    result = getattr(module, attr)()
    if not isinstance(result, DetectorSet):
        raise TypeError(f"{factory} returned {type(result).__name__}, expected DetectorSet")
    logger.info(f"Loaded detectors from {factory}")
    return result


def get_doc(doc_id: str) -> DocumentState:
    """Fetch a document by id or 404."""
    if doc_id not in documents:
        raise HTTPException(status_code=404, detail=f"Document '{doc_id}' not found")
    return documents[doc_id]
