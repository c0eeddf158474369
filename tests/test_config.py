"""Tests for pageredact.config: env overrides and the JSON settings sidecar."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from pageredact.config import RedactionConfig
from pageredact.models.schemas import KindPreference


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith("PAGEREDACT_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_values(self):
        cfg = RedactionConfig()
        assert cfg.fusion_ceiling == 0.99
        assert cfg.kind_preference == KindPreference.PATTERN
        assert cfg.containment_min_length == 3
        assert cfg.port == 8920

    def test_assignment_validated(self):
        cfg = RedactionConfig()
        with pytest.raises(ValidationError):
            cfg.min_confidence = 2.0


class TestEnvOverrides:
    def test_json_and_plain_values(self, monkeypatch):
        monkeypatch.setenv("PAGEREDACT_MIN_CONFIDENCE", "0.5")
        monkeypatch.setenv("PAGEREDACT_KINDS", '["email", "phone"]')
        monkeypatch.setenv("PAGEREDACT_KIND_PREFERENCE", "MODEL")
        monkeypatch.setenv("PAGEREDACT_LOG_FORMAT", "json")
        cfg = RedactionConfig()
        assert cfg.min_confidence == 0.5
        assert cfg.kinds == ["email", "phone"]
        assert cfg.kind_preference == KindPreference.MODEL
        assert cfg.log_format == "json"

    def test_invalid_value_ignored(self, monkeypatch):
        monkeypatch.setenv("PAGEREDACT_FUSION_CEILING", "7")
        assert RedactionConfig().fusion_ceiling == 0.99


class TestSettingsFile:
    def test_load_persistable_keys_only(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"min_confidence": 0.3, "port": 1}), encoding="utf-8")
        cfg = RedactionConfig(settings_path=path)
        assert cfg.min_confidence == 0.3
        assert cfg.port == 8920

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"min_confidence": 0.3}), encoding="utf-8")
        monkeypatch.setenv("PAGEREDACT_MIN_CONFIDENCE", "0.6")
        assert RedactionConfig(settings_path=path).min_confidence == 0.6

    def test_settings_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "s.json"
        path.write_text(json.dumps({"proximity_boost": True}), encoding="utf-8")
        monkeypatch.setenv("PAGEREDACT_SETTINGS", str(path))
        assert RedactionConfig().proximity_boost is True

    def test_corrupt_file_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json", encoding="utf-8")
        assert RedactionConfig(settings_path=path).min_confidence == 0.0

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "settings.json"
        cfg = RedactionConfig(settings_path=path)
        cfg.kind_preference = KindPreference.CONFIDENCE
        cfg.export_padding = 1.5
        cfg.save_user_settings()

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["kind_preference"] == "CONFIDENCE"
        assert "port" not in saved

        reloaded = RedactionConfig(settings_path=path)
        assert reloaded.kind_preference == KindPreference.CONFIDENCE
        assert reloaded.export_padding == 1.5
