"""Global redaction-core configuration."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pageredact.models.schemas import KindPreference

logger = logging.getLogger(__name__)

_ENV_PREFIX = "PAGEREDACT_"


class RedactionConfig(BaseModel):
    """Application-wide settings, loaded once at startup."""

    model_config = ConfigDict(validate_assignment=True)

    # Detection layers
    pattern_enabled: bool = True
    model_enabled: bool = True
    model_timeout_s: float = Field(default=10.0, gt=0.0)
    min_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    kinds: Optional[list[str]] = None           # None = all taxonomy labels

    # Merge policy
    fusion_ceiling: float = Field(
        default=0.99, ge=0.0, le=1.0,
        description=(
            "Upper bound for a fused confidence. Agreement between two "
            "independent detectors raises certainty but never to 1.0."
        ),
    )
    kind_preference: KindPreference = KindPreference.PATTERN
    containment_min_length: int = Field(
        default=3, ge=0,
        description=(
            "Containment only counts as a match when the shorter of the "
            "two normalised strings is longer than this many characters."
        ),
    )
    proximity_boost: bool = False
    proximity_threshold: int = Field(default=50, ge=0)

    # Long pages are fed to the model in overlapping windows; 0 disables
    model_window_size: int = Field(default=512, ge=0)
    model_window_overlap: float = Field(default=0.25, ge=0.0, lt=1.0)

    # Geometry
    identity_precision: int = Field(default=0, ge=0, le=4)

    # Concurrency
    max_workers: int = Field(default_factory=lambda: min(4, os.cpu_count() or 2), ge=1)

    # Model-result cache
    cache_max_age_s: float = Field(default=3600.0, gt=0.0)
    cache_max_entries: int = Field(default=100, ge=1)

    # OCR
    tesseract_cmd: str = ""                            # Empty = auto-detect
    ocr_language: str = "eng"
    ocr_min_confidence: int = Field(default=30, ge=0, le=100)
    ocr_timeout_s: float = Field(default=30.0, gt=0.0)

    # Export
    export_fill_color: tuple[int, int, int] = (0, 0, 0)
    export_padding: float = Field(default=0.0, ge=0.0)

    # Service
    detector_factory: str = ""                         # "package.module:callable" returning a DetectorSet

    # Logging / server
    log_format: str = "text"                           # "text" | "json"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = Field(default=8920, ge=0, le=65535)

    settings_path: Optional[Path] = None

    def model_post_init(self, __context: object) -> None:
        if self.settings_path is None:
            env_path = os.environ.get(f"{_ENV_PREFIX}SETTINGS")
            if env_path:
                self.settings_path = Path(env_path)
        self._load_user_settings()
        self._apply_env_overrides()

    # ------------------------------------------------------------------
    # Persistence: user-editable settings are saved to a JSON sidecar
    # ------------------------------------------------------------------

    _PERSISTABLE_KEYS: set[str] = {
        "pattern_enabled", "model_enabled", "model_timeout_s",
        "min_confidence", "kinds", "fusion_ceiling", "kind_preference",
        "containment_min_length", "proximity_boost", "proximity_threshold",
        "model_window_size", "model_window_overlap",
        "max_workers", "ocr_language", "ocr_min_confidence", "ocr_timeout_s",
        "tesseract_cmd", "export_padding",
    }

    def _load_user_settings(self) -> None:
        """Read persisted user settings from disk and apply them."""
        path = self.settings_path
        if path is None or not path.exists():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
            for key, value in data.items():
                if key in self._PERSISTABLE_KEYS and hasattr(self, key):
                    setattr(self, key, value)
            logger.info(f"Loaded user settings from {path}")
        except Exception as exc:
            logger.warning(f"Failed to load settings from {path}: {exc}")

    def _apply_env_overrides(self) -> None:
        """Apply ``PAGEREDACT_<FIELD>`` environment variables (JSON or plain)."""
        for name in type(self).model_fields:
            raw = os.environ.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None or name == "settings_path":
                continue
            try:
                value = json.loads(raw)
            except ValueError:
                value = raw
            try:
                setattr(self, name, value)
            except ValidationError as exc:
                logger.warning(f"Ignoring invalid {_ENV_PREFIX}{name.upper()}={raw!r}: {exc}")

    def save_user_settings(self) -> None:
        """Persist current user-editable settings to disk."""
        if self.settings_path is None:
            logger.warning("No settings path configured; settings not saved")
            return
        data = {k: getattr(self, k) for k in self._PERSISTABLE_KEYS if hasattr(self, k)}
        try:
            self.settings_path.write_text(
                json.dumps(data, indent=2, default=str),
                encoding="utf-8",
            )
            logger.info(f"Saved user settings to {self.settings_path}")
        except Exception as exc:
            logger.warning(f"Failed to save settings: {exc}")


# Singleton, importable from anywhere
config = RedactionConfig()
