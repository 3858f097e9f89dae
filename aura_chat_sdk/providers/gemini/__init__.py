"""Gemini provider package."""

from .adapter import GeminiChatSession, GeminiProvider

__all__ = ["GeminiChatSession", "GeminiProvider"]
