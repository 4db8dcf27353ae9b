"""Application layer: ingestion use cases."""
