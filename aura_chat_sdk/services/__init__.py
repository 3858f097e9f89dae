"""High-level chat services."""

from .chat_service import ResilientChatService

__all__ = ["ResilientChatService"]
