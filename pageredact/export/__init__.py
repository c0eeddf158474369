"""Export painting."""
