"""Layout ingestion."""
