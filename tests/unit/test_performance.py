"""Unit tests for the PageSpeed performance lookup."""

import asyncio
import json
from unittest.mock import patch

import aiohttp
import pytest

from site_auditor.audit.analysis.performance import (
    TIMEOUT_MESSAGE,
    PerformanceClient,
    extract_metrics,
)

LIGHTHOUSE_BODY = {
    "lighthouseResult": {
        "audits": {
            "largest-contentful-paint": {"displayValue": "1.8 s"},
            "cumulative-layout-shift": {"displayValue": "0.02"},
            "total-blocking-time": {"displayValue": "120 ms"},
            "first-contentful-paint": {"displayValue": "0.9 s"},
            "speed-index": {"displayValue": "1.5 s"},
        }
    }
}


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stand-in for aiohttp.ClientSession returning one canned response."""

    def __init__(self, status=200, body="", error=None):
        self.status = status
        self.body = body
        self.error = error
        self.requests = []

    def __call__(self, *args, **kwargs):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, params=None):
        self.requests.append((url, params))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status, self.body)


class TestExtractMetrics:
    """Tests for extract_metrics."""

    def test_display_values(self):
        result = extract_metrics(LIGHTHOUSE_BODY)

        assert result.ok
        assert result.metrics["lcp"] == "1.8 s"
        assert result.metrics["tti"] == "N/A"

    def test_missing_lighthouse_result(self):
        result = extract_metrics({"error": {"message": "Lighthouse returned error: NO_FCP"}})

        assert not result.ok
        assert result.error == "Lighthouse returned error: NO_FCP"


    def test_unexpected_shapes_do_not_raise(self):
        assert extract_metrics(["not", "an", "object"]).error == "Unexpected PageSpeed response format."
        assert extract_metrics({"error": "quota exhausted"}).error == "quota exhausted"
        assert extract_metrics({"lighthouseResult": "oops"}).error == "Lighthouse returned an empty result."

    def test_malformed_audits_become_not_available(self):
        result = extract_metrics({"lighthouseResult": {"audits": {"speed-index": "1.5 s"}}})

        assert result.metrics["si"] == "N/A"


class TestPerformanceClient:
    """Tests for PerformanceClient.fetch."""

    @pytest.mark.asyncio
    async def test_success(self):
        session = FakeSession(body=json.dumps(LIGHTHOUSE_BODY))
        client = PerformanceClient(api_key="key-1234")

        with patch("aiohttp.ClientSession", session):
            result = await client.fetch("https://example.com")

        assert result.metrics["cls"] == "0.02"
        assert result.error is None
        _, params = session.requests[0]
        assert params == {
            "url": "https://example.com",
            "category": "performance",
            "strategy": "desktop",
            "key": "key-1234",
        }

    @pytest.mark.asyncio
    async def test_api_error_message(self):
        body = json.dumps({"error": {"message": "API key not valid"}})
        session = FakeSession(status=400, body=body)

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient(api_key="bad").fetch("https://example.com")

        assert result.metrics is None
        assert result.error == "API key not valid"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        session = FakeSession(status=502, body="Bad Gateway")

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient().fetch("https://example.com")

        assert result.error == "API Error 502: Bad Gateway"

    @pytest.mark.asyncio
    async def test_unexpected_success_body(self):
        session = FakeSession(body=json.dumps([{"lighthouseResult": {}}]))

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient().fetch("https://example.com")

        assert result.metrics is None
        assert result.error == "Unexpected PageSpeed response format."

    @pytest.mark.asyncio
    async def test_string_error_body(self):
        session = FakeSession(status=429, body=json.dumps({"error": "rate limited"}))

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient().fetch("https://example.com")

        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = FakeSession(error=asyncio.TimeoutError())

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient().fetch("https://example.com")

        assert result.error == TIMEOUT_MESSAGE

    @pytest.mark.asyncio
    async def test_client_error(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("Cannot connect to host"))

        with patch("aiohttp.ClientSession", session):
            result = await PerformanceClient().fetch("https://example.com")

        assert result.error == "Cannot connect to host"

    def test_key_falls_back_to_model_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "model-key")

        assert PerformanceClient().api_key == "model-key"
