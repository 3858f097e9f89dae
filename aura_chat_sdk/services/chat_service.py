"""
Resilient chat service.

Wraps the remote chat provider with the reliability layer: every send runs
through the circuit breaker, which retries internally with the API retry
policy, and every failure is turned into an AppError and routed through
the ErrorService before a sanitized ServiceError reaches the caller.
"""

import asyncio
import base64
import binascii
import time
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar, Union

from ..config.constants import HEALTH_ERROR_TAIL, PROBE_SYSTEM_INSTRUCTION
from ..config.settings import ChatServiceConfig
from ..models.chat import ChatResponse, ServiceHealth, StreamChunk
from ..observability.logging import ServiceLogger
from ..providers.base import ChatProvider, ChatSession
from ..providers.gemini import GeminiProvider
from ..reliability.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from ..reliability.error_service import ErrorService
from ..reliability.errors import AppError, ErrorSeverity, ErrorType, ServiceError
from ..reliability.retry import API_RETRY, RetryManager, RetryObserver, RetryOptions

logger = ServiceLogger("chat_service")

T = TypeVar('T')

ProviderFactory = Callable[[str], ChatProvider]


class ResilientChatService:
    """
    Chat facade composing RetryManager, CircuitBreaker and ErrorService.

    The service starts uninitialized; ``initialize()`` validates the API
    key with a connectivity probe. Chat sessions are created lazily on the
    first send and dropped by ``reset()``.
    """

    def __init__(
        self,
        config: Optional[ChatServiceConfig] = None,
        error_service: Optional[ErrorService] = None,
        provider_factory: Optional[ProviderFactory] = None,
        retry_manager: Optional[RetryManager] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config or ChatServiceConfig()
        self.error_service = error_service or ErrorService.get_instance()
        self._provider_factory = provider_factory or self._create_default_provider
        self.retry_manager = retry_manager or RetryManager()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            "chat",
            CircuitBreakerConfig(
                failure_threshold=self.config.failure_threshold,
                reset_timeout=self.config.reset_timeout,
            ),
        )

        self._provider: Optional[ChatProvider] = None
        self._chat: Optional[ChatSession] = None
        self._initialized = False

        self._setup_error_handlers()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _create_default_provider(self, api_key: str) -> ChatProvider:
        return GeminiProvider(api_key=api_key, timeout=self.config.timeout)

    def _setup_error_handlers(self):
        self.error_service.register_error_handler(ErrorType.API, self._on_api_error)
        self.error_service.register_error_handler(ErrorType.NETWORK, self._on_network_error)

    def _on_api_error(self, error: AppError):
        logger.warning(f"API error [{error.id}]: {error.message}")

        # Rejected credentials are not an outage
        details = f"{error.message} {error.original_error or ''}".lower()
        if "authentication" in details or "unauthorized" in details:
            self.circuit_breaker.reset()

    def _on_network_error(self, error: AppError):
        logger.warning(f"Network error [{error.id}]: {error.message}")

    def _fail(
        self,
        error_type: ErrorType,
        severity: ErrorSeverity,
        message: str,
        original_error: Optional[BaseException] = None,
        context: Optional[dict] = None,
    ) -> ServiceError:
        """Build and route an AppError, returning the exception to raise."""
        app_error = self.error_service.create_error(
            error_type, severity, message, original_error, context
        )
        self.error_service.handle_error(app_error)
        return ServiceError(app_error)

    async def initialize(self, api_key: Optional[str]):
        """
        Connect to the provider and verify the key with a minimal round-trip.

        Raises:
            ServiceError: initialization/critical when the key is missing or
                the probe fails after its retries
        """
        if not api_key:
            raise self._fail(
                ErrorType.INITIALIZATION,
                ErrorSeverity.CRITICAL,
                "API key is required",
                context={"has_api_key": False},
            ) from None

        if self.error_service.hooks_installed:
            self.error_service.attach_to_loop(asyncio.get_running_loop())

        await self._release_provider()

        try:
            self._provider = self._provider_factory(api_key)
            await self._test_connection()
        except Exception as error:
            await self._release_provider()
            raise self._fail(
                ErrorType.INITIALIZATION,
                ErrorSeverity.CRITICAL,
                "Failed to initialize chat service",
                error,
                {"has_api_key": True},
            ) from None

        self._initialized = True
        logger.info("Chat service initialized", model=self.config.model)

    async def _release_provider(self):
        """Close and forget the current provider, dropping its conversation."""
        provider, self._provider = self._provider, None
        self._chat = None
        self._initialized = False
        if provider is None:
            return
        try:
            await provider.aclose()
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to close provider", error_msg=str(error))

    async def _test_connection(self):
        probe = self._provider.create_chat(
            model=self.config.model,
            system_instruction=PROBE_SYSTEM_INSTRUCTION,
            temperature=0.1,
            top_p=0.1,
            top_k=1,
        )

        def on_retry(attempt: int, error: Exception):
            logger.warning(f"Connection test retry {attempt}: {error}")

        result = await self.retry_manager.execute(
            lambda: probe.send_message("test"),
            API_RETRY,
            max_attempts=self.config.probe_attempts,
            base_delay=self.config.probe_base_delay,
            on_retry=on_retry,
        )
        if not result.success:
            raise result.error

    def start_chat_session(self) -> ChatSession:
        """Create a new conversation, replacing the current one."""
        if not self._initialized or self._provider is None:
            raise self._fail(
                ErrorType.INITIALIZATION,
                ErrorSeverity.HIGH,
                "Service not initialized",
                context={"is_initialized": self._initialized, "has_provider": self._provider is not None},
            ) from None

        try:
            self._chat = self._provider.create_chat(
                model=self.config.model,
                system_instruction=self.config.system_instruction,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
                top_k=self.config.top_k,
            )
        except Exception as error:
            raise self._fail(
                ErrorType.INITIALIZATION,
                ErrorSeverity.HIGH,
                "Failed to create chat session",
                error,
                {"model": self.config.model},
            ) from None

        return self._chat

    def _retry_options(self, label: str, message_length: int) -> RetryOptions:
        return API_RETRY.merge(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            backoff_multiplier=self.config.retry_backoff_multiplier,
            max_delay=self.config.retry_max_delay,
            on_retry=self._retry_reporter(label, message_length),
        )

    def _retry_reporter(self, label: str, message_length: int) -> RetryObserver:
        def on_retry(attempt: int, error: Exception):
            retry_error = self.error_service.create_error(
                ErrorType.API,
                ErrorSeverity.MEDIUM,
                f"Retrying {label} (attempt {attempt})",
                error,
                {"attempt": attempt, "message_length": message_length},
            )
            self.error_service.handle_error(retry_error)

        return on_retry

    async def _guarded_call(self, operation: Callable[[], Awaitable[T]], options: RetryOptions) -> T:
        """Run ``operation`` through the circuit breaker, retrying inside it."""
        async def retried() -> T:
            result = await self.retry_manager.execute(operation, options)
            if not result.success:
                raise result.error
            return result.result

        return await self.circuit_breaker.execute(retried)

    def _breaker_context(self, message_length: int) -> dict:
        return {
            "message_length": message_length,
            "circuit_breaker_state": self.circuit_breaker.get_state().value,
            "failure_count": self.circuit_breaker.get_failure_count(),
        }

    async def send_message(self, text: str) -> ChatResponse:
        """
        Send one message and return the full reply.

        Raises:
            ServiceError: api/high once retries are exhausted or the circuit is open
        """
        chat = self._chat or self.start_chat_session()

        try:
            return await self._guarded_call(
                lambda: chat.send_message(text),
                self._retry_options("message send", len(text)),
            )
        except Exception as error:
            raise self._fail(
                ErrorType.API,
                ErrorSeverity.HIGH,
                "Failed to send message to AI",
                error,
                self._breaker_context(len(text)),
            ) from None

    async def send_message_stream(self, text: str) -> AsyncIterator[StreamChunk]:
        """
        Send one message and stream the reply.

        Yields chunks with decoded audio bytes, then a final ``done`` chunk.
        A chunk whose audio cannot be decoded is reported and yielded with
        text only.

        Raises:
            ServiceError: api/high when the stream cannot be opened or the
                upstream aborts mid-stream
        """
        chat = self._chat or self.start_chat_session()

        try:
            stream = await self._guarded_call(
                lambda: chat.send_message_stream(text),
                self._retry_options("stream send", len(text)),
            )
        except Exception as error:
            raise self._fail(
                ErrorType.API,
                ErrorSeverity.HIGH,
                "Failed to send streaming message to AI",
                error,
                self._breaker_context(len(text)),
            ) from None

        chunk_count = 0
        audio_chunks = 0
        total_chars = 0
        start_time = time.monotonic()

        try:
            async for chunk in stream:
                if chunk.done:
                    break
                chunk_count += 1
                total_chars += len(chunk.text or "")
                audio = self._decode_audio(chunk.audio, chunk_count, start_time)
                if audio:
                    audio_chunks += 1
                yield StreamChunk(text=chunk.text or "", audio=audio)
        except Exception as error:
            raise self._fail(
                ErrorType.API,
                ErrorSeverity.HIGH,
                "Stream processing error",
                error,
                {
                    "chunk_count": chunk_count,
                    "stream_duration": time.monotonic() - start_time,
                    "message_length": len(text),
                },
            ) from None
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        logger.log_stream_summary(
            model=self.config.model,
            chunks=chunk_count,
            total_chars=total_chars,
            audio_chunks=audio_chunks,
            duration=time.monotonic() - start_time,
            breaker_state=self.circuit_breaker.get_state().value,
        )
        yield StreamChunk(done=True)

    def _decode_audio(self, audio: Union[bytes, str, None], chunk_count: int, start_time: float) -> Optional[bytes]:
        if not audio:
            return None
        if isinstance(audio, bytes):
            return audio
        try:
            return base64.b64decode(audio, validate=True)
        except (binascii.Error, ValueError) as error:
            audio_error = self.error_service.create_error(
                ErrorType.AUDIO,
                ErrorSeverity.MEDIUM,
                "Failed to decode audio data",
                error,
                {"chunk_count": chunk_count, "stream_duration": time.monotonic() - start_time},
            )
            self.error_service.handle_error(audio_error)
            return None

    def get_health(self) -> ServiceHealth:
        return ServiceHealth(
            is_initialized=self._initialized,
            circuit_breaker_state=self.circuit_breaker.get_state().value,
            failure_count=self.circuit_breaker.get_failure_count(),
            last_errors=self.error_service.get_stored_errors()[-HEALTH_ERROR_TAIL:],
        )

    def reset(self):
        """Close the circuit and drop the current conversation."""
        self.circuit_breaker.reset()
        self._chat = None

    async def destroy(self):
        """Reset, release the provider and remove the registered error handlers."""
        self.reset()
        await self._release_provider()
        self.error_service.unregister_error_handler(ErrorType.API)
        self.error_service.unregister_error_handler(ErrorType.NETWORK)
