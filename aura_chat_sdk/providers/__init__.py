"""Remote chat providers."""

from .base import ChatProvider, ChatSession, ProviderError
from .errors import ErrorMapper
from .gemini import GeminiChatSession, GeminiProvider

__all__ = [
    "ChatProvider",
    "ChatSession",
    "ProviderError",
    "ErrorMapper",
    "GeminiChatSession",
    "GeminiProvider",
]
