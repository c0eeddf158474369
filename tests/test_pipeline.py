"""Tests for pageredact.detection.pipeline: detect() with injected fake
detectors, degraded model path and the model-result cache."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pageredact.config import RedactionConfig
from pageredact.detection.cache import DetectionCache
from pageredact.detection.detectors import DetectorSet
from pageredact.detection.pipeline import DetectOptions, detect
from pageredact.models.schemas import DetectionSource, DiagnosticKind, KindPreference

from conftest import fake_patterns, make_fake_model

_TEXT = "Contact: john@example.com or 555-123-4567"


class TestDetect:
    def test_scenario_email_and_phone(self, pattern_only):
        merged = detect(_TEXT, DetectOptions(), pattern_only, page=1)
        assert sorted(d.kind for d in merged.detections) == ["email", "phone"]
        assert merged.page == 1

    def test_empty_text_calls_nothing(self):
        pattern = MagicMock(return_value=[])
        merged = detect("   ", DetectOptions(), DetectorSet(pattern=pattern))
        assert merged.detections == []
        pattern.assert_not_called()

    def test_pattern_disabled(self, pattern_only):
        merged = detect(_TEXT, DetectOptions(pattern_enabled=False), pattern_only)
        assert merged.detections == []

    def test_model_results_merged(self, pattern_and_model):
        merged = detect("John Smith wrote to john@example.com", DetectOptions(), pattern_and_model)
        kinds = {d.kind for d in merged.detections}
        assert kinds == {"person", "email"}
        assert merged.model_available is True

    def test_idempotent(self, pattern_and_model):
        text = "John Smith, 555-123-4567"
        a = detect(text, DetectOptions(), pattern_and_model)
        b = detect(text, DetectOptions(), pattern_and_model)
        assert a.detections == b.detections

    def test_pattern_errors_propagate(self):
        def broken(_):
            raise ValueError("bad rule")

        with pytest.raises(ValueError):
            detect(_TEXT, DetectOptions(), DetectorSet(pattern=broken))


class TestDegradedModel:
    def test_failing_model_degrades_to_patterns(self):
        def broken(_):
            raise RuntimeError("CUDA out of memory")

        merged = detect(_TEXT, DetectOptions(), DetectorSet(pattern=fake_patterns, model=broken), page=3)
        assert merged.model_available is False
        assert len(merged.detections) == 2
        assert all(d.source == DetectionSource.PATTERN for d in merged.detections)
        assert [d.kind for d in merged.diagnostics] == [DiagnosticKind.DETECTOR_UNAVAILABLE]
        assert merged.diagnostics[0].page == 3

    def test_slow_model_times_out(self):
        import threading
        release = threading.Event()

        def slow(_):
            release.wait(5)
            return []

        try:
            merged = detect(
                _TEXT, DetectOptions(model_timeout_s=0.05),
                DetectorSet(pattern=fake_patterns, model=slow),
            )
        finally:
            release.set()
        assert merged.model_available is False
        assert len(merged.detections) == 2

    def test_no_model_configured(self, pattern_only):
        merged = detect(_TEXT, DetectOptions(), pattern_only)
        assert merged.model_available is False
        assert merged.diagnostics == []


class TestModelCache:
    def test_cache_hit_skips_model(self):
        model = MagicMock(side_effect=make_fake_model({"Alice": 0.9}))
        detectors = DetectorSet(model=model)
        cache = DetectionCache()
        for _ in range(2):
            merged = detect("Alice here", DetectOptions(), detectors, page=1, doc_id="d1", cache=cache)
            assert [d.text for d in merged.detections] == ["Alice"]
        assert model.call_count == 1

    def test_changed_text_misses(self):
        model = MagicMock(side_effect=make_fake_model({"Alice": 0.9}))
        detectors = DetectorSet(model=model)
        cache = DetectionCache()
        detect("Alice here", DetectOptions(), detectors, page=1, doc_id="d1", cache=cache)
        detect("Alice there", DetectOptions(), detectors, page=1, doc_id="d1", cache=cache)
        assert model.call_count == 2

    def test_no_doc_id_no_cache(self):
        model = MagicMock(side_effect=make_fake_model({"Alice": 0.9}))
        cache = DetectionCache()
        detect("Alice", DetectOptions(), DetectorSet(model=model), page=1, cache=cache)
        assert len(cache) == 0


class TestOptions:
    def test_from_config_snapshot(self):
        cfg = RedactionConfig(min_confidence=0.4, kind_preference=KindPreference.MODEL, kinds=["email"])
        opts = DetectOptions.from_config(cfg)
        assert opts.min_confidence == 0.4
        assert opts.kind_preference == KindPreference.MODEL
        assert opts.kinds == ("email",)

    def test_none_overrides_ignored(self):
        cfg = RedactionConfig(model_enabled=False)
        opts = DetectOptions.from_config(cfg, model_enabled=None, pattern_enabled=False)
        assert opts.model_enabled is False
        assert opts.pattern_enabled is False

    def test_fingerprint_stable(self):
        assert DetectOptions().model_fingerprint() == DetectOptions().model_fingerprint()
        assert DetectOptions(model_name="a").model_fingerprint() != DetectOptions(model_name="b").model_fingerprint()
