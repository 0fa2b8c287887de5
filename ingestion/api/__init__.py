"""REST API for operators of the ingestion pipeline."""
