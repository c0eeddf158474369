"""Redaction core: detection merge, geometry location, page state and export."""

__version__ = "0.1.0"
