"""Unit tests for the FastAPI router."""

import asyncio
import base64
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from aura_chat_sdk.config.settings import ChatServiceConfig
from aura_chat_sdk.http import create_router
from aura_chat_sdk.models.chat import ChatResponse, StreamChunk
from aura_chat_sdk.providers.base import ProviderError

pytestmark = pytest.mark.unit


def parse_events(body: str):
    events = []
    for line in body.splitlines():
        if line.startswith("data: "):
            data = line[len("data: "):]
            events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture
def service_config():
    return ChatServiceConfig(max_retries=1)


@pytest.fixture
def client(chat_service):
    asyncio.run(chat_service.initialize("test-key"))
    app = FastAPI()
    app.include_router(create_router(chat_service))
    return TestClient(app)


class TestChatEndpoints:

    def test_chat(self, client, fake_provider):
        fake_provider.session.replies = [ChatResponse(text="Hello", audio=b"\x00\xff")]

        response = client.post("/chat", json={"text": "Hi"})

        assert response.status_code == 200
        assert response.json() == {"text": "Hello", "audio": base64.b64encode(b"\x00\xff").decode()}

    def test_chat_failure_returns_503_with_user_message(self, client, fake_provider):
        fake_provider.session.replies = [ProviderError("gemini API error 500: internal secret", provider="gemini")]

        response = client.post("/chat", json={"text": "Hi"})

        assert response.status_code == 503
        assert response.json()["detail"] == "Unable to reach the AI service. Please try again."
        assert "secret" not in response.text

    def test_empty_text_rejected(self, client):
        assert client.post("/chat", json={"text": ""}).status_code == 422

    def test_stream(self, client, fake_provider):
        fake_provider.session.streams = [[
            StreamChunk(text="Hel", audio=base64.b64encode(b"pcm").decode()),
            StreamChunk(text="lo"),
        ]]

        response = client.post("/chat/stream", json={"text": "Hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_events(response.text)
        assert events[0] == {"text": "Hel", "audio": base64.b64encode(b"pcm").decode(), "done": False}
        assert events[1]["text"] == "lo"
        assert events[2]["done"] is True
        assert events[-1] == "[DONE]"

    def test_stream_open_failure_returns_503(self, client, fake_provider):
        fake_provider.session.streams = [ProviderError("gemini API error 503: busy", provider="gemini")]

        response = client.post("/chat/stream", json={"text": "Hi"})

        assert response.status_code == 503

    def test_stream_mid_failure_emits_error_event(self, client, fake_provider):
        fake_provider.session.streams = [[StreamChunk(text="part"), RuntimeError("reset")]]

        response = client.post("/chat/stream", json={"text": "Hi"})

        events = parse_events(response.text)
        assert events[0]["text"] == "part"
        assert events[1] == {"error": "Unable to reach the AI service. Please try again."}
        assert events[-1] == "[DONE]"


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["is_initialized"] is True
        assert body["circuit_breaker_state"] == "closed"
        assert body["failure_count"] == 0
        assert body["last_errors"] == []

    def test_reset(self, client, chat_service, fake_provider):
        client.post("/chat", json={"text": "Hi"})

        assert client.post("/reset").json() == {"status": "reset"}
        client.post("/chat", json={"text": "Hi again"})

        assert fake_provider.chat_sessions_created == 2

    def test_errors_listing_and_clearing(self, client, fake_provider):
        fake_provider.session.replies = [ProviderError("gemini API error 500: internal", provider="gemini")]
        client.post("/chat", json={"text": "Hi"})

        errors = client.get("/errors").json()["errors"]
        assert errors[-1]["message"] == "Failed to send message to AI"
        assert errors[-1]["type"] == "api"

        assert client.delete("/errors").json() == {"status": "cleared"}
        assert client.get("/errors").json() == {"errors": []}
