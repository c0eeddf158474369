"""Shared fakes: small deterministic detectors standing in for the real
pattern rule set and the statistical model."""

from __future__ import annotations

import re

import pytest

from pageredact.detection.detectors import DetectorSet

_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.]*\w")
_PHONE_RE = re.compile(r"\b\d{3}-\d{3}-\d{4}\b")
_SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")


def fake_patterns(text: str) -> list[dict]:
    """Email, phone and SSN rules returning ``{text, kind}`` items."""
    hits: list[dict] = []
    for kind, rx in (("email", _EMAIL_RE), ("phone", _PHONE_RE), ("ssn", _SSN_RE)):
        hits.extend({"text": m.group(), "kind": kind} for m in rx.finditer(text))
    return hits


def make_fake_model(names: dict[str, float], label: str = "B-PER"):
    """Model that tags every occurrence of the given names with a fixed score."""
    def _model(text: str) -> list[dict]:
        out = []
        for name, score in names.items():
            for m in re.finditer(re.escape(name), text):
                out.append({
                    "text": name, "kind": label, "score": score,
                    "start": m.start(), "end": m.end(),
                })
        return out
    return _model


@pytest.fixture
def pattern_only() -> DetectorSet:
    return DetectorSet(pattern=fake_patterns)


@pytest.fixture
def pattern_and_model() -> DetectorSet:
    return DetectorSet(pattern=fake_patterns, model=make_fake_model({"John Smith": 0.85}))


def fake_detector_set() -> DetectorSet:
    """Factory in ``module:callable`` form for detector loading tests."""
    return DetectorSet(pattern=fake_patterns)
