"""FastAPI HTTP endpoints for the Aura chat client.

This module exposes a ResilientChatService over REST. Build the router with
``create_router(service)`` and mount it on an application; the service must
already be initialized.
"""

import base64
import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..models.chat import ChatResponse, ServiceHealth, StreamChunk
from ..reliability.errors import ServiceError
from ..services.chat_service import ResilientChatService


class ChatRequest(BaseModel):
    text: str = Field(..., min_length=1)


def _encode_audio(audio: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(audio).decode("ascii") if audio else None


def _response_body(response: ChatResponse) -> Dict[str, Any]:
    return {"text": response.text, "audio": _encode_audio(response.audio)}


def _chunk_event(chunk: StreamChunk) -> str:
    body = {"text": chunk.text, "audio": _encode_audio(chunk.audio), "done": chunk.done}
    return f"data: {json.dumps(body)}\n\n"


def create_router(service: ResilientChatService) -> APIRouter:
    """Create the API router bound to ``service``."""
    router = APIRouter()

    @router.post("/chat")
    async def chat(request: ChatRequest):
        """Send one message and return the complete reply."""
        try:
            response = await service.send_message(request.text)
        except ServiceError as e:
            raise HTTPException(status_code=503, detail=e.user_message)
        return _response_body(response)

    @router.post("/chat/stream")
    async def chat_stream(request: ChatRequest):
        """Stream the reply as server-sent events, ending with ``[DONE]``."""
        stream = service.send_message_stream(request.text)

        # Pull the first chunk here so open failures still map to a status code
        try:
            first = await stream.__anext__()
        except ServiceError as e:
            raise HTTPException(status_code=503, detail=e.user_message)

        async def generate_events():
            yield _chunk_event(first)
            try:
                async for chunk in stream:
                    yield _chunk_event(chunk)
            except ServiceError as e:
                yield f"data: {json.dumps({'error': e.user_message})}\n\n"
            yield "data: [DONE]\n\n"

        return StreamingResponse(
            generate_events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"}
        )

    @router.get("/health", response_model=ServiceHealth)
    async def health():
        return service.get_health()

    @router.post("/reset")
    async def reset():
        """Close the circuit and start a fresh conversation."""
        service.reset()
        return {"status": "reset"}

    @router.get("/errors")
    async def list_errors():
        errors = service.error_service.get_stored_errors()
        return {"errors": [error.model_dump() for error in errors]}

    @router.delete("/errors")
    async def clear_errors():
        service.error_service.clear_stored_errors()
        return {"status": "cleared"}

    return router
