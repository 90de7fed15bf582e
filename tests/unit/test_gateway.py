"""Unit tests for the analysis call gateway."""

import asyncio

import pytest

from fakes import FakeModelClient
from site_auditor.audit.analysis.gateway import (
    AnalysisGateway,
    GeminiModelClient,
    ModelImage,
    ModelRequest,
    ModelResponse,
)
from site_auditor.audit.errors import GenerationError, ResponseParseError
from site_auditor.audit.queue.semaphore import BoundedSemaphore

SCHEMA = {"type": "OBJECT", "properties": {"Score": {"type": "INTEGER"}}, "required": ["Score"]}


class TestAnalysisGateway:
    """Tests for AnalysisGateway."""

    @pytest.mark.asyncio
    async def test_returns_recovered_json(self, make_gateway):
        client = FakeModelClient(lambda request: '```json\n{"Score": 8}\n```')
        gateway = make_gateway(client)

        result = await gateway.generate("system", "content", SCHEMA, name="Test")

        assert result == {"Score": 8}
        request = client.requests[0]
        assert request.system_instruction == "system"
        assert request.content == "content"
        assert request.response_schema == SCHEMA

    @pytest.mark.asyncio
    async def test_empty_images_are_dropped(self, make_gateway):
        client = FakeModelClient()
        gateway = make_gateway(client)

        await gateway.generate(
            "system", "content", SCHEMA,
            images=[ModelImage(data="aGVsbG8="), ModelImage(data="")],
        )

        assert len(client.requests[0].images) == 1

    @pytest.mark.asyncio
    async def test_empty_response_raises(self, make_gateway):
        client = FakeModelClient(lambda request: ModelResponse(text=None, finish_reason="SAFETY"))

        with pytest.raises(GenerationError, match="empty response"):
            await make_gateway(client).generate("system", "content", SCHEMA)

    @pytest.mark.asyncio
    async def test_whitespace_response_raises(self, make_gateway):
        client = FakeModelClient(lambda request: "   ")

        with pytest.raises(GenerationError):
            await make_gateway(client).generate("system", "content", SCHEMA)

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, make_gateway):
        calls = []

        def responder(request):
            calls.append(request)
            if len(calls) < 3:
                raise RuntimeError("503 Service Unavailable")
            return {"Score": 1}

        gateway = make_gateway(FakeModelClient(responder), max_attempts=5)

        assert await gateway.generate("system", "content", SCHEMA) == {"Score": 1}
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_fatal_error_is_wrapped(self, make_gateway):
        def responder(request):
            raise ValueError("invalid argument")

        client = FakeModelClient(responder)

        with pytest.raises(GenerationError, match="invalid argument") as exc_info:
            await make_gateway(client).generate("system", "content", SCHEMA, name="UX Audit expert")

        assert len(client.requests) == 1
        assert exc_info.value.details == {"operation": "UX Audit expert"}

    @pytest.mark.asyncio
    async def test_unparseable_response_raises_parse_error(self, make_gateway, monkeypatch):
        monkeypatch.setattr("site_auditor.audit.analysis.json_recovery.repair_json", lambda *a, **k: "")
        client = FakeModelClient(lambda request: "Sorry, I cannot help with that.")

        with pytest.raises(ResponseParseError):
            await make_gateway(client).generate("system", "content", SCHEMA)

    @pytest.mark.asyncio
    async def test_ticket_released_on_every_path(self):
        semaphore = BoundedSemaphore(1, name="model")

        def responder(request):
            if request.content == "fail":
                raise ValueError("invalid argument")
            return {"Score": 2}

        gateway = AnalysisGateway(FakeModelClient(responder), semaphore=semaphore)

        await gateway.generate("system", "ok", SCHEMA)
        with pytest.raises(GenerationError):
            await gateway.generate("system", "fail", SCHEMA)

        assert semaphore.active == 0
        stats = semaphore.get_stats()
        assert stats["total_acquired"] == stats["total_released"] == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_bounded_by_model_pool(self):
        semaphore = BoundedSemaphore(2, name="model")
        in_flight = 0
        peak = 0

        class SlowClient(FakeModelClient):
            async def generate(self, request):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return ModelResponse(text='{"Score": 1}')

        gateway = AnalysisGateway(SlowClient(), semaphore=semaphore)
        await asyncio.gather(*[gateway.generate("s", "c", SCHEMA) for _ in range(6)])

        assert peak == 2


class TestGeminiModelClient:
    """Tests for GeminiModelClient request assembly."""

    def test_missing_api_key_raises(self):
        client = GeminiModelClient(api_key=None)

        with pytest.raises(GenerationError, match="Missing AI API Key"):
            client.client

    def test_text_only_contents(self):
        client = GeminiModelClient(api_key="test-key")
        request = ModelRequest(system_instruction="s", content="hello", response_schema=SCHEMA)

        assert client.build_contents(request) == "hello"

    def test_image_parts_precede_text(self):
        client = GeminiModelClient(api_key="test-key")
        request = ModelRequest(
            system_instruction="s",
            content="hello",
            response_schema=SCHEMA,
            images=[ModelImage(data="aGVsbG8=", mime_type="image/png")],
        )

        parts = client.build_contents(request)

        assert len(parts) == 2
        assert parts[0].inline_data.mime_type == "image/png"
        assert parts[1].text == "hello"

    def test_config_requests_json(self):
        client = GeminiModelClient(api_key="test-key", max_output_tokens=1024)
        request = ModelRequest(system_instruction="be terse", content="c", response_schema=SCHEMA)

        config = client.build_config(request)

        assert config.response_mime_type == "application/json"
        assert config.system_instruction == "be terse"
        assert config.max_output_tokens == 1024
        assert len(config.safety_settings) == 4
