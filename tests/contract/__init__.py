"""API contract tests for the embedding service."""
