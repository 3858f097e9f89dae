"""End-to-end integration tests for Aura Chat SDK."""

import base64
import json

import httpx
import pytest

from aura_chat_sdk import (
    ChatServiceConfig,
    ErrorService,
    GeminiProvider,
    ResilientChatService,
    RetryManager,
    ServiceError,
)
from aura_chat_sdk.reliability.storage import JsonFileStore
from tests.helpers.fakes import SleepRecorder


def reply(text, audio=None):
    parts = [{"text": text}]
    if audio is not None:
        parts.append({"inlineData": {"mimeType": "audio/pcm", "data": base64.b64encode(audio).decode()}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}}]}


class ScriptedGemini:
    """Fake Gemini backend routing on the endpoint being called."""

    def __init__(self):
        self.generate = []
        self.stream = []
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.stream if request.url.path.endswith(":streamGenerateContent") else self.generate
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def backend():
    return ScriptedGemini()


@pytest.fixture
def build_service(backend, tmp_path):
    def build(config=None):
        sleeper = SleepRecorder()
        service = ResilientChatService(
            config=config or ChatServiceConfig(model="gemini-test"),
            error_service=ErrorService(store=JsonFileStore(tmp_path / "errors.json")),
            provider_factory=lambda key: GeminiProvider(api_key=key, transport=httpx.MockTransport(backend)),
            retry_manager=RetryManager(sleep=sleeper, rng=lambda: 1.0),
        )
        service.sleeper = sleeper
        return service

    return build


@pytest.mark.integration
class TestEndToEnd:
    """End-to-end tests against a scripted HTTP backend."""

    @pytest.mark.asyncio
    async def test_conversation_with_transient_failure(self, backend, build_service):
        backend.generate = [
            httpx.Response(200, json=reply("ok")),
            httpx.Response(503, json={"error": {"message": "overloaded"}}),
            httpx.Response(200, json=reply("Hello there", b"\x10\x20")),
        ]
        service = build_service()

        await service.initialize("test-key")
        response = await service.send_message("Hi")

        assert response.text == "Hello there"
        assert response.audio == b"\x10\x20"
        assert service.sleeper.delays == [2.0]
        assert backend.calls[1].headers["x-goog-api-key"] == "test-key"

        errors = service.error_service.get_stored_errors()
        assert [e.message for e in errors] == ["Retrying message send (attempt 1)"]
        await service.destroy()

    @pytest.mark.asyncio
    async def test_streaming_with_audio(self, backend, build_service):
        backend.generate = [httpx.Response(200, json=reply("ok"))]
        body = "".join(
            f"data: {json.dumps(p)}\n\n" for p in (reply("Hel"), reply("lo", b"pcm"))
        ).encode()
        backend.stream = [httpx.Response(200, content=body)]
        service = build_service()
        await service.initialize("test-key")

        chunks = [chunk async for chunk in service.send_message_stream("Hi")]

        assert "".join(c.text or "" for c in chunks) == "Hello"
        assert chunks[1].audio == b"pcm"
        assert chunks[-1].done
        await service.destroy()

    @pytest.mark.asyncio
    async def test_invalid_key_fails_initialization(self, backend, build_service, tmp_path):
        backend.generate = [httpx.Response(401, json={"error": {"message": "API key not valid"}})]
        service = build_service()

        with pytest.raises(ServiceError) as exc_info:
            await service.initialize("bad-key")

        assert exc_info.value.user_message == "Startup failed. Please check your API key and refresh."
        assert len(backend.calls) == 1

        # History was persisted to disk
        reloaded = ErrorService(store=JsonFileStore(tmp_path / "errors.json"))
        assert reloaded.get_stored_errors()[-1].severity == "critical"

    @pytest.mark.asyncio
    async def test_outage_opens_circuit(self, backend, build_service):
        backend.generate = [
            httpx.Response(200, json=reply("ok")),
            httpx.Response(503, json={"error": {"message": "down"}}),
        ]
        service = build_service(ChatServiceConfig(max_retries=2, failure_threshold=2))
        await service.initialize("test-key")

        for _ in range(2):
            with pytest.raises(ServiceError):
                await service.send_message("Hi")
        calls_before = len(backend.calls)

        with pytest.raises(ServiceError):
            await service.send_message("Hi")

        assert len(backend.calls) == calls_before
        health = service.get_health()
        assert health.circuit_breaker_state == "open"
        assert len(health.last_errors) == 5

        service.reset()
        assert service.get_health().circuit_breaker_state == "closed"
        await service.destroy()
