"""
Aura Chat SDK - resilient client for a conversational generative-AI backend.

This package wraps a remote chat API (Gemini by default) with a reliability
layer:
- Retry with exponential backoff and jitter
- Circuit breaker guarding the remote dependency
- Token bucket rate limiting
- Error taxonomy, dispatch and persisted error history

Features:
- Streaming and non-streaming chat with inline audio
- Health snapshot and reset
- Optional FastAPI router and a small CLI
"""

__version__ = "0.1.0"

from .config.settings import ChatServiceConfig, get_api_key
from .models.chat import ChatResponse, ServiceHealth, StreamChunk
from .providers.base import ChatProvider, ChatSession, ProviderError
from .providers.gemini import GeminiProvider
from .reliability import (
    AppError,
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    ErrorService,
    ErrorSeverity,
    ErrorType,
    RateLimiter,
    RetryManager,
    RetryOptions,
    ServiceError,
)
from .services.chat_service import ResilientChatService

__all__ = [
    # Main service
    "ResilientChatService",
    "ChatServiceConfig",
    "get_api_key",

    # Models
    "ChatResponse",
    "StreamChunk",
    "ServiceHealth",

    # Providers
    "ChatProvider",
    "ChatSession",
    "ProviderError",
    "GeminiProvider",

    # Reliability
    "AppError",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ErrorService",
    "ErrorSeverity",
    "ErrorType",
    "RateLimiter",
    "RetryManager",
    "RetryOptions",
    "ServiceError",
]
