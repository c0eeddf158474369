"""Shared text-normalisation helpers.

Centralises invisible-character removal, whitespace collapsing, and the
canonical comparison form used by the merger and the geometry locator.
"""

from __future__ import annotations

import re as _re
import unicodedata as _unicodedata

# ---------------------------------------------------------------------------
# Invisible characters
# ---------------------------------------------------------------------------

# Format characters that OCR engines and PDF text layers leave behind
# between glyphs.  They carry no visible content.
_INVISIBLE: dict[int, None] = {
    ord(c): None
    for c in (
        "\u00AD",  # SOFT HYPHEN
        "\u200B",  # ZERO WIDTH SPACE
        "\u200C",  # ZERO WIDTH NON-JOINER
        "\u200D",  # ZERO WIDTH JOINER
        "\u200E",  # LEFT-TO-RIGHT MARK
        "\u200F",  # RIGHT-TO-LEFT MARK
        "\u2060",  # WORD JOINER
        "\u2061",  # FUNCTION APPLICATION
        "\u2062",  # INVISIBLE TIMES
        "\u2063",  # INVISIBLE SEPARATOR
        "\uFEFF",  # ZERO WIDTH NO-BREAK SPACE / BOM
    )
}

_WS_RE = _re.compile(r"\s+")
_NON_DIGIT_RE = _re.compile(r"[^0-9]")


def remove_invisible(text: str) -> str:
    """Drop zero-width and other format characters."""
    return text.translate(_INVISIBLE)


def ws_collapse(text: str) -> str:
    """Collapse whitespace runs into single spaces and strip."""
    return _WS_RE.sub(" ", text).strip()


# ---------------------------------------------------------------------------
# Combined normalisation
# ---------------------------------------------------------------------------

def normalize_for_matching(text: str) -> str:
    """Canonical comparison form: NFKC, quotes/dashes unified, invisibles
    removed, case-folded, whitespace collapsed.

    NFKC folds full-width forms (``Ｊｏｈｎ`` → ``John``, ``１２３`` →
    ``123``) and compatibility ligatures.  Quote and dash variants are
    mapped first because several of them have no compatibility
    decomposition.
    """
    if not text:
        return ""
    text = text.translate(_QUOTE_MAP)
    text = text.translate(_DASH_MAP)
    text = _unicodedata.normalize("NFKC", text)
    text = remove_invisible(text)
    text = text.casefold()
    return ws_collapse(text)


def digits_only(text: str) -> str:
    """ASCII digits of *text* after NFKC folding, in order."""
    if not text:
        return ""
    return _NON_DIGIT_RE.sub("", _unicodedata.normalize("NFKC", text))


# ---------------------------------------------------------------------------
# Quote / dash normalisation maps (built once at import time)
# ---------------------------------------------------------------------------

_QUOTE_MAP: dict[int, int] = {
    ord(c): ord("'")
    for c in (
        "\u2018",  # LEFT SINGLE QUOTATION MARK
        "\u2019",  # RIGHT SINGLE QUOTATION MARK
        "\u201A",  # SINGLE LOW-9 QUOTATION MARK
        "\u201B",  # SINGLE HIGH-REVERSED-9 QUOT MARK
        "\u02BC",  # MODIFIER LETTER APOSTROPHE
        "\u02B9",  # MODIFIER LETTER PRIME
        "`",  # GRAVE ACCENT
        "\u00B4",  # ACUTE ACCENT
        "\uFF07",  # FULLWIDTH APOSTROPHE
    )
}

_DASH_MAP: dict[int, int] = {
    ord(c): ord("-")
    for c in (
        "\u2010",  # HYPHEN
        "\u2011",  # NON-BREAKING HYPHEN
        "\u2012",  # FIGURE DASH
        "\u2013",  # EN DASH
        "\u2014",  # EM DASH
        "\u2015",  # HORIZONTAL BAR
        "\u2212",  # MINUS SIGN
        "\uFE58",  # SMALL EM DASH
        "\uFE63",  # SMALL HYPHEN-MINUS
        "\uFF0D",  # FULLWIDTH HYPHEN-MINUS
    )
}
