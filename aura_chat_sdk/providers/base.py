"""
Base Chat Provider Interface

This module defines the abstract interface for the remote chat dependency.
The chat service only ever talks to a provider through these two classes,
so any backend (or a test double) can be substituted.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from ..models.chat import ChatResponse, StreamChunk


class ChatSession(ABC):
    """
    A stateful conversation with the remote model.

    A session remembers previous turns; dropping it and creating a new one
    starts a fresh conversation.
    """

    @abstractmethod
    async def send_message(self, text: str) -> ChatResponse:
        """
        Send one user turn and wait for the full reply.

        Raises:
            ProviderError: For transport and API errors
        """
        pass

    @abstractmethod
    async def send_message_stream(self, text: str) -> AsyncIterator[StreamChunk]:
        """
        Send one user turn and open a streamed reply.

        Awaiting this method issues the request; failures to open the stream
        raise here. The returned iterator yields chunks whose ``audio`` may be
        base64 text or bytes, and ends with a ``StreamChunk(done=True)``.

        Raises:
            ProviderError: For transport and API errors
        """
        pass


class ChatProvider(ABC):
    """
    Abstract base class for remote chat providers.

    The provider owns the connection (client, credentials) and hands out
    sessions. Provider implementations should NOT contain retry or
    circuit-breaking logic; the chat service layers that on top.
    """

    @abstractmethod
    def create_chat(
        self,
        model: str,
        system_instruction: str,
        temperature: float,
        top_p: float,
        top_k: int,
    ) -> ChatSession:
        """Create a new conversation."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is configured (credentials present)."""
        pass

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        By default, returns the class name without 'Provider' suffix.
        """
        class_name = self.__class__.__name__
        if class_name.endswith("Provider"):
            return class_name[:-8].lower()
        return class_name.lower()


class ProviderError(Exception):
    """
    Base exception for provider-related errors.

    Attributes:
        message: Error message
        provider: Provider name
        status_code: HTTP status code if applicable
        retry_after: Seconds to wait before retry if applicable
        is_retryable: Whether this error should be retried
        original_error: The original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_retryable = False  # Default, should be set by error mapper
        self.original_error: Optional[BaseException] = None
