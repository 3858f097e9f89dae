"""Chat payloads exchanged with the remote dependency and returned to callers."""

from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ..reliability.errors import ErrorRecord


class ChatResponse(BaseModel):
    """Result of a single (non-streaming) chat turn."""
    text: str = ""
    audio: Optional[bytes] = None


class StreamChunk(BaseModel):
    """
    One element of a streamed chat turn.

    Providers may deliver ``audio`` as base64 text or raw bytes; the chat
    service always yields decoded bytes. The final element has ``done=True``.
    """
    text: Optional[str] = None
    audio: Optional[Union[bytes, str]] = None
    done: bool = False


class ServiceHealth(BaseModel):
    is_initialized: bool
    circuit_breaker_state: str
    failure_count: int
    last_errors: List[ErrorRecord] = Field(default_factory=list)
