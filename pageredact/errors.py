"""Error taxonomy for the redaction core.

The first four classes are page-local and non-fatal: the pipeline logs
them and records a :class:`~pageredact.models.schemas.Diagnostic`
instead of letting them escape.  The state errors are raised to the
caller.
"""

from __future__ import annotations

from typing import Optional

from pageredact.models.schemas import Diagnostic, DiagnosticKind


class RedactionError(Exception):
    """Base class for all redaction-core errors."""

    diagnostic_kind: Optional[DiagnosticKind] = None

    def __init__(self, message: str = "", page: Optional[int] = None):
        super().__init__(message)
        self.page = page

    def to_diagnostic(self) -> Diagnostic:
        if self.diagnostic_kind is None:
            raise TypeError(f"{type(self).__name__} has no diagnostic form")
        return Diagnostic(kind=self.diagnostic_kind, page=self.page, message=str(self))


class InvalidGeometry(RedactionError):
    """A box with NaN coordinates or a non-positive width/height."""
    diagnostic_kind = DiagnosticKind.INVALID_GEOMETRY


class UnlocatableDetection(RedactionError):
    """A detection whose text is absent from the page's geometry source."""
    diagnostic_kind = DiagnosticKind.UNLOCATABLE_DETECTION


class DetectorUnavailable(RedactionError):
    """The statistical model or OCR engine failed or timed out."""
    diagnostic_kind = DiagnosticKind.DETECTOR_UNAVAILABLE


class MalformedLayout(RedactionError):
    """A layout fragment or OCR word that does not match the boundary shape."""
    diagnostic_kind = DiagnosticKind.MALFORMED_LAYOUT


# ---------------------------------------------------------------------------
# State errors (raised)
# ---------------------------------------------------------------------------

class UnknownIdentity(RedactionError, KeyError):
    """No automatic item carries the requested identity."""


class UnknownPage(RedactionError, IndexError):
    """Page number outside ``1..page_count``."""


class PageBusy(RedactionError):
    """A second writer tried to update a page whose detection pass is running."""
