"""OCR adapter."""
