"""Tests for pageredact.detection.cache.DetectionCache."""

from __future__ import annotations

from pageredact.detection.cache import DetectionCache
from pageredact.models.schemas import Detection, DetectionSource


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _dets(*names: str) -> list[Detection]:
    return [
        Detection(text=n, kind="person", confidence=0.8, source=DetectionSource.MODEL)
        for n in names
    ]


class TestDetectionCache:
    def test_roundtrip(self):
        cache = DetectionCache()
        cache.put("doc", 1, "Alice", _dets("Alice"), "fp")
        assert [d.text for d in cache.get("doc", 1, "Alice", "fp")] == ["Alice"]

    def test_miss(self):
        assert DetectionCache().get("doc", 1, "Alice") is None

    def test_expired_entry_dropped(self):
        clock = _Clock()
        cache = DetectionCache(max_age_s=60, clock=clock)
        cache.put("doc", 1, "Alice", _dets("Alice"))
        clock.now += 61
        assert cache.get("doc", 1, "Alice") is None
        assert len(cache) == 0

    def test_text_change_invalidates(self):
        cache = DetectionCache()
        cache.put("doc", 1, "Alice", _dets("Alice"))
        assert cache.get("doc", 1, "Alice!") is None
        assert len(cache) == 0

    def test_fingerprint_change_invalidates(self):
        cache = DetectionCache()
        cache.put("doc", 1, "Alice", _dets("Alice"), "model-a")
        assert cache.get("doc", 1, "Alice", "model-b") is None

    def test_oldest_evicted_when_full(self):
        cache = DetectionCache(max_entries=2)
        cache.put("doc", 1, "a", _dets("a"))
        cache.put("doc", 2, "b", _dets("b"))
        cache.put("doc", 3, "c", _dets("c"))
        assert cache.get("doc", 1, "a") is None
        assert cache.get("doc", 3, "c") is not None

    def test_invalidate_document_and_page(self):
        cache = DetectionCache()
        for page in (1, 2, 3):
            cache.put("doc", page, "x", _dets("x"))
        cache.put("other", 1, "x", _dets("x"))
        assert cache.invalidate("doc", 2) == 1
        assert cache.invalidate("doc") == 2
        assert len(cache) == 1

    def test_prune(self):
        clock = _Clock()
        cache = DetectionCache(max_age_s=10, clock=clock)
        cache.put("doc", 1, "x", _dets("x"))
        clock.now += 5
        cache.put("doc", 2, "y", _dets("y"))
        clock.now += 6
        assert cache.prune() == 1
        assert len(cache) == 1

    def test_returned_list_is_a_copy(self):
        cache = DetectionCache()
        cache.put("doc", 1, "x", _dets("x"))
        cache.get("doc", 1, "x").clear()
        assert len(cache.get("doc", 1, "x")) == 1

    def test_stats(self):
        cache = DetectionCache(max_entries=5)
        cache.put("doc", 1, "x", _dets("x"))
        cache.get("doc", 1, "x")
        cache.get("doc", 2, "x")
        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["max_entries"] == 5
