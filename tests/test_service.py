"""Tests for service wiring: detector loading and log formatting."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from pageredact.api.deps import load_detectors
from pageredact.detection.detectors import DetectorSet
from pageredact.structured_logging import JSONFormatter


class TestLoadDetectors:
    def test_factory_reference(self):
        detectors = load_detectors("conftest:fake_detector_set")
        assert isinstance(detectors, DetectorSet)
        assert detectors.pattern is not None
        assert detectors.model is None

    def test_bad_reference(self):
        with pytest.raises(ValueError):
            load_detectors("conftest")

    def test_wrong_return_type(self):
        with pytest.raises(TypeError):
            load_detectors("os:getcwd")


class TestJSONFormatter:
    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("pageredact.test", logging.INFO, __file__, 1, "located %d", (3,), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_fields(self):
        payload = json.loads(JSONFormatter().format(self._record(page=2, doc_id="d1")))
        assert payload["message"] == "located 3"
        assert payload["severity"] == "INFO"
        assert payload["page"] == 2
        assert payload["doc_id"] == "d1"

    def test_unknown_extras_dropped(self):
        payload = json.loads(JSONFormatter().format(self._record(secret="x")))
        assert "secret" not in payload

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        payload = json.loads(JSONFormatter().format(record))
        assert payload["exception"]["type"] == "RuntimeError"
        assert "boom" in payload["exception"]["stacktrace"]


class TestPackageExports:
    def test_lazy_detection_exports(self):
        import pageredact.detection as detection
        from pageredact.detection.pipeline import DetectOptions, detect

        assert detection.detect is detect
        assert detection.DetectOptions is DetectOptions
        assert detection.DetectorSet is DetectorSet

    def test_unknown_attribute(self):
        import pageredact.detection as detection

        with pytest.raises(AttributeError):
            detection.no_such_thing
