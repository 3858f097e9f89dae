import base64
import binascii
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..base import ChatProvider, ChatSession, ProviderError
from ..errors import ErrorMapper
from ...config.constants import GEMINI_API_BASE_URL
from ...config.settings import get_api_key
from ...models.chat import ChatResponse, StreamChunk
from ...observability.logging import ServiceLogger
from .streaming import extract_content, iter_sse_payloads


logger = ServiceLogger("gemini")


class GeminiProvider(ChatProvider):
    """Gemini REST API provider using httpx.AsyncClient."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = GEMINI_API_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client: Optional[httpx.AsyncClient] = None
        # Use provided API key, fall back to environment variable
        self._api_key = api_key or get_api_key()
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError("Gemini API key not found in environment variables", provider="gemini")
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={"x-goog-api-key": self._api_key},
            )
        return self._client

    def is_available(self) -> bool:
        return bool(self._api_key)

    def create_chat(
        self,
        model: str,
        system_instruction: str,
        temperature: float,
        top_p: float,
        top_k: int,
    ) -> "GeminiChatSession":
        return GeminiChatSession(
            provider=self,
            model=model,
            system_instruction=system_instruction,
            generation_config={"temperature": temperature, "topP": top_p, "topK": top_k},
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class GeminiChatSession(ChatSession):
    """Conversation state kept client-side and replayed on every turn."""

    def __init__(
        self,
        provider: GeminiProvider,
        model: str,
        system_instruction: str,
        generation_config: Dict[str, Any],
    ):
        self._provider = provider
        self.model = model
        self.system_instruction = system_instruction
        self.generation_config = generation_config
        self.history: List[Dict[str, Any]] = []

    @property
    def turn(self) -> int:
        """1-based number of the exchange about to be sent."""
        return len(self.history) // 2 + 1

    def _build_payload(self, text: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": self.history + [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": self.generation_config,
        }
        if self.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        return payload

    def _record_turn(self, user_text: str, model_text: str):
        self.history.append({"role": "user", "parts": [{"text": user_text}]})
        self.history.append({"role": "model", "parts": [{"text": model_text}]})

    async def send_message(self, text: str) -> ChatResponse:
        payload = self._build_payload(text)

        with logger.track_call("generateContent", self.model, turn=self.turn) as call:
            try:
                response = await self._provider.client.post(
                    f"/models/{self.model}:generateContent", json=payload
                )
                call["status_code"] = response.status_code
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise ErrorMapper.map_http_error(e, "gemini") from e

            reply_text, audio_data = extract_content(response.json())

        audio = None
        if audio_data:
            try:
                audio = base64.b64decode(audio_data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ProviderError(f"gemini returned invalid audio data: {e}", provider="gemini") from e

        self._record_turn(text, reply_text)
        return ChatResponse(text=reply_text, audio=audio)

    async def send_message_stream(self, text: str) -> AsyncIterator[StreamChunk]:
        client = self._provider.client
        request = client.build_request(
            "POST",
            f"/models/{self.model}:streamGenerateContent",
            params={"alt": "sse"},
            json=self._build_payload(text),
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise ErrorMapper.map_http_error(e, "gemini") from e

        if response.is_error:
            await response.aread()
            await response.aclose()
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise ErrorMapper.map_http_error(e, "gemini") from e

        logger.debug("Opened stream", model=self.model, turn=self.turn, status_code=response.status_code)
        return self._iter_chunks(text, response)

    async def _iter_chunks(self, user_text: str, response: httpx.Response) -> AsyncIterator[StreamChunk]:
        reply_parts: List[str] = []
        try:
            async for payload in iter_sse_payloads(response):
                chunk_text, audio_data = extract_content(payload)
                if chunk_text:
                    reply_parts.append(chunk_text)
                yield StreamChunk(text=chunk_text, audio=audio_data)
        except httpx.HTTPError as e:
            raise ErrorMapper.map_http_error(e, "gemini") from e
        finally:
            await response.aclose()

        self._record_turn(user_text, "".join(reply_parts))
        yield StreamChunk(done=True)
