"""Tests for pageredact.detection.detectors: raw output conversion and
bounded external calls."""

from __future__ import annotations

import threading
import time

import pytest

from pageredact.detection.detectors import (
    CallPool,
    call_with_timeout,
    entities_to_detections,
    map_model_label,
    pattern_hits_to_detections,
)
from pageredact.errors import DetectorUnavailable
from pageredact.models.schemas import DetectionSource, Span


class TestPatternHits:
    def test_confidence_fixed_and_no_span(self):
        dets = pattern_hits_to_detections([{"text": "a@b.com", "kind": "email"}])
        assert len(dets) == 1
        assert dets[0].confidence == 1.0
        assert dets[0].source == DetectionSource.PATTERN
        assert dets[0].span is None

    def test_malformed_items_skipped(self):
        raw = [
            {"text": "a@b.com"},                                  # no kind
            {"text": "a@b.com", "kind": "email", "extra": 1},     # unknown key
            "a@b.com",
            {"text": "", "kind": "email"},
            {"text": "c@d.com", "kind": "email"},
        ]
        assert [d.text for d in pattern_hits_to_detections(raw)] == ["c@d.com"]

    def test_none_is_empty(self):
        assert pattern_hits_to_detections(None) == []


class TestEntities:
    def test_span_and_score_kept(self):
        dets = entities_to_detections([
            {"text": "Alice", "kind": "B-PER", "score": 0.83, "start": 4, "end": 9},
        ])
        assert dets[0].kind == "person"
        assert dets[0].confidence == pytest.approx(0.83)
        assert dets[0].span == Span(start=4, end=9)
        assert dets[0].source == DetectionSource.MODEL

    def test_score_clamped(self):
        dets = entities_to_detections([
            {"text": "Acme", "kind": "ORG", "score": 1.4, "start": 0, "end": 4},
            {"text": "Paris", "kind": "LOC", "score": -0.2, "start": 5, "end": 10},
        ])
        assert [d.confidence for d in dets] == [1.0, 0.0]

    def test_bad_items_skipped(self):
        dets = entities_to_detections([
            {"text": "Alice", "kind": "PER", "score": 0.9, "start": 9, "end": 4},
            {"text": "Alice", "kind": "PER", "score": float("nan"), "start": 0, "end": 5},
            {"text": "Alice", "kind": "PER", "start": 0, "end": 5},
            {"text": "Bob", "kind": "PER", "score": 0.9, "start": 0, "end": 3},
        ])
        assert [d.text for d in dets] == ["Bob"]

    @pytest.mark.parametrize("label,expected", [
        ("B-PER", "person"),
        ("I-ORG", "organization"),
        ("LOC", "location"),
        ("MISC", "misc"),
        ("DATE", "date"),
        ("Email", "email"),
    ])
    def test_label_map(self, label, expected):
        assert map_model_label(label) == expected


class TestCallWithTimeout:
    def test_returns_result(self):
        assert call_with_timeout(lambda x: x * 2, 21, timeout_s=1.0) == 42

    def test_timeout_raises_unavailable(self):
        release = threading.Event()

        def slow(_):
            release.wait(5)
            return []

        try:
            with pytest.raises(DetectorUnavailable, match="timed out"):
                call_with_timeout(slow, "text", timeout_s=0.05, what="model")
        finally:
            release.set()

    def test_failure_raises_unavailable(self):
        def broken(_):
            raise RuntimeError("model weights missing")

        with pytest.raises(DetectorUnavailable) as exc_info:
            call_with_timeout(broken, "text", timeout_s=1.0)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestCallPool:
    @staticmethod
    def _hang(release: threading.Event):
        def fn(_):
            release.wait(5)
            return []
        return fn

    def test_hung_model_does_not_block_ocr(self):
        release = threading.Event()
        try:
            for _ in range(4):
                with pytest.raises(DetectorUnavailable, match="timed out"):
                    call_with_timeout(self._hang(release), "text", timeout_s=0.05, what="model")
            assert call_with_timeout(str.upper, "fast", 1.0, what="OCR", pool="ocr") == "FAST"
        finally:
            release.set()

    def test_fresh_workers_after_all_hang(self):
        pool = CallPool("test", max_workers=2)
        release = threading.Event()
        try:
            for _ in range(2):
                with pytest.raises(DetectorUnavailable, match="timed out"):
                    pool.call(self._hang(release), None, 0.05, "model")
            assert pool.stuck == 2
            assert pool.call(str.upper, "fast", 1.0, "model") == "FAST"
        finally:
            release.set()

    def test_stuck_calls_bounded(self):
        pool = CallPool("test", max_workers=1, max_abandoned=2)
        release = threading.Event()
        try:
            for _ in range(2):
                with pytest.raises(DetectorUnavailable, match="timed out"):
                    pool.call(self._hang(release), None, 0.05, "model")
            with pytest.raises(DetectorUnavailable, match="still hung"):
                pool.call(str.upper, "fast", 1.0, "model")
        finally:
            release.set()

    def test_finished_calls_released(self):
        pool = CallPool("test", max_workers=2)
        release = threading.Event()
        done = threading.Event()

        def slow(_):
            release.wait(5)
            done.set()

        with pytest.raises(DetectorUnavailable):
            pool.call(slow, None, 0.05, "model")
        assert pool.stuck == 1
        release.set()
        assert done.wait(2)
        for _ in range(100):
            if pool.stuck == 0:
                break
            time.sleep(0.01)
        assert pool.stuck == 0
