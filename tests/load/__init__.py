"""Locust scenarios for the embedding service.

Run with ``locust -f tests/load/locustfile.py`` against a live service.
"""
