"""Per-page redaction state."""
