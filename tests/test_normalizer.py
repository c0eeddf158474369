"""Tests for pageredact.text_utils and pageredact.detection.normalizer."""

from __future__ import annotations

import pytest

from pageredact.detection.normalizer import normalize_detection, normalize_detections
from pageredact.models.schemas import Detection, DetectionSource, NormalizedDetection, Span
from pageredact.text_utils import (
    digits_only,
    normalize_for_matching,
    remove_invisible,
    ws_collapse,
)


def _det(text: str, kind: str = "person", conf: float = 0.9) -> Detection:
    return Detection(text=text, kind=kind, confidence=conf, source=DetectionSource.MODEL)


# ---------------------------------------------------------------------------
# text_utils
# ---------------------------------------------------------------------------

class TestNormalizeForMatching:
    def test_case_and_whitespace(self):
        assert normalize_for_matching("  John \t\n SMITH ") == "john smith"

    def test_invisible_characters_removed(self):
        assert normalize_for_matching("Jo\u200bhn\u00ad") == "john"

    def test_full_width_folded(self):
        assert normalize_for_matching("Ｊｏｈｎ") == "john"

    def test_curly_quotes_unified(self):
        assert normalize_for_matching("O’Brien") == "o'brien"

    def test_dashes_unified(self):
        assert normalize_for_matching("555–123—4567") == "555-123-4567"

    def test_empty(self):
        assert normalize_for_matching("") == ""

    def test_idempotent(self):
        once = normalize_for_matching("  Ａlice\u200b  O’Neil ")
        assert normalize_for_matching(once) == once


class TestDigitsOnly:
    def test_punctuation_dropped(self):
        assert digits_only("(555) 123-4567") == "5551234567"

    def test_full_width_digits(self):
        assert digits_only("１２３") == "123"

    def test_no_digits(self):
        assert digits_only("abc") == ""


class TestHelpers:
    def test_remove_invisible(self):
        assert remove_invisible("a\ufeffb\u2060c") == "abc"

    def test_ws_collapse(self):
        assert ws_collapse(" a  b\n\nc ") == "a b c"


# ---------------------------------------------------------------------------
# normalize_detection
# ---------------------------------------------------------------------------

class TestNormalizeDetection:
    def test_views_attached(self):
        nd = normalize_detection(_det("SSN  123–45–6789", kind="ssn"))
        assert isinstance(nd, NormalizedDetection)
        assert nd.normalized_text == "ssn 123-45-6789"
        assert nd.digit_projection == "123456789"

    def test_other_fields_preserved(self):
        src = Detection(
            text="Alice", kind="person", confidence=0.7,
            source=DetectionSource.MODEL, span=Span(start=3, end=8),
        )
        nd = normalize_detection(src)
        assert (nd.text, nd.kind, nd.confidence, nd.source, nd.span) == (
            "Alice", "person", 0.7, DetectionSource.MODEL, Span(start=3, end=8),
        )

    def test_empty_text_yields_empty_views(self):
        nd = normalize_detection(_det(""))
        assert nd.normalized_text == ""
        assert nd.digit_projection == ""

    def test_invisible_only_text(self):
        nd = normalize_detection(_det("\u200b\u200c"))
        assert nd.normalized_text == ""

    def test_list_order_preserved(self):
        dets = [_det("Bob"), _det("alice"), _det("Carol")]
        assert [d.normalized_text for d in normalize_detections(dets)] == ["bob", "alice", "carol"]

    def test_renormalizing_is_stable(self):
        nd = normalize_detection(_det("  JOHN  "))
        assert normalize_detection(nd).normalized_text == nd.normalized_text

    @pytest.mark.parametrize("conf", [-0.1, 1.01])
    def test_confidence_out_of_range_rejected(self, conf):
        with pytest.raises(ValueError):
            _det("x", conf=conf)
