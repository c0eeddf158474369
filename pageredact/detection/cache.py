"""In-memory cache of statistical-model results, keyed by document page.

Model inference is the slowest stage of ``detect()``; re-scanning a page
whose text and options are unchanged reuses the cached detections.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from pageredact.models.schemas import Detection

logger = logging.getLogger(__name__)


def text_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()


@dataclass
class _Entry:
    text_hash: str
    fingerprint: str
    detections: list[Detection]
    stored_at: float


class DetectionCache:
    """Bounded, age-limited cache of model detections per ``(doc_id, page)``.

    An entry is only returned when the page text and the options
    fingerprint both match what was stored; anything else evicts it.
    """

    def __init__(
        self,
        max_age_s: float = 3600.0,
        max_entries: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age_s = max_age_s
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple[str, int], _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(
        self, doc_id: str, page: int, text: str, fingerprint: str = "",
    ) -> Optional[list[Detection]]:
        key = (doc_id, page)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            reason = None
            if self._clock() - entry.stored_at > self.max_age_s:
                reason = "expired"
            elif entry.text_hash != text_hash(text):
                reason = "text changed"
            elif entry.fingerprint != fingerprint:
                reason = "options changed"

            if reason is not None:
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache entry %s:%d dropped (%s)", doc_id, page, reason)
                return None

            self._hits += 1
            return list(entry.detections)

    def put(
        self,
        doc_id: str,
        page: int,
        text: str,
        detections: list[Detection],
        fingerprint: str = "",
    ) -> None:
        key = (doc_id, page)
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                oldest, _ = self._entries.popitem(last=False)
                logger.debug("Cache full; evicted %s:%d", *oldest)
            self._entries[key] = _Entry(
                text_hash=text_hash(text),
                fingerprint=fingerprint,
                detections=list(detections),
                stored_at=self._clock(),
            )

    def invalidate(self, doc_id: str, page: Optional[int] = None) -> int:
        """Drop one page, or every page of *doc_id* when *page* is None."""
        with self._lock:
            keys = [
                k for k in self._entries
                if k[0] == doc_id and (page is None or k[1] == page)
            ]
            for k in keys:
                del self._entries[k]
        if keys:
            logger.debug("Invalidated %d cache entr(ies) for %s", len(keys), doc_id)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune(self) -> int:
        """Remove entries older than ``max_age_s``; returns how many went."""
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if now - e.stored_at > self.max_age_s]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "max_age_s": self.max_age_s,
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        return len(self._entries)
