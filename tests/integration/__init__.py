"""Integration tests wiring the service, pipeline and HTTP adapters together.

Provider traffic goes through ``httpx.MockTransport``; nothing leaves the process.
"""
