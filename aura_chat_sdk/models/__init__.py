"""Data models for the chat client."""

from .chat import ChatResponse, ServiceHealth, StreamChunk

__all__ = [
    "ChatResponse",
    "ServiceHealth",
    "StreamChunk",
]
