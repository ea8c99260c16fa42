"""Tests for the batch embedder.

Unit tests run against an in-memory provider and ``httpx.MockTransport``; no
network access is required. Load scenarios live in ``tests/load``.
"""
