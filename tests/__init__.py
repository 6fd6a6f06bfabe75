"""
Test Suite

Contains unit tests for the price feed client.

Structure:
- tests/unit/: Tests for individual components (schemas, fallback feed,
  REST and stream clients, statistics, history and export, services, CLI)

Uses pytest with pytest-asyncio for testing async functionality. No test
touches the network: HTTP is mocked with monkeypatch / httpx.MockTransport
and the stream with mocked aiohttp sessions.
"""
