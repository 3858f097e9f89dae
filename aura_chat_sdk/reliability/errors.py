"""
Error taxonomy for the chat client.

Defines the closed set of error types and severities, the immutable
``AppError`` record built by :class:`ErrorService`, the flattened
``ErrorRecord`` kept in the persisted history, and the exceptions raised
by the reliability primitives.
"""

from __future__ import annotations

import traceback
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Error categories handled by the application."""
    NETWORK = "network"
    API = "api"
    AUDIO = "audio"
    SPEECH_RECOGNITION = "speech_recognition"
    INITIALIZATION = "initialization"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severities, ordered from LOW to CRITICAL."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def level(self) -> int:
        return _SEVERITY_LEVELS[self]

    def at_least(self, other: "ErrorSeverity") -> bool:
        return self.level >= other.level


_SEVERITY_LEVELS = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


DEFAULT_USER_MESSAGE = "An error occurred. Please try again."

USER_MESSAGES: Dict[ErrorType, Dict[ErrorSeverity, str]] = {
    ErrorType.NETWORK: {
        ErrorSeverity.LOW: "Connection is a bit slow. Please wait...",
        ErrorSeverity.MEDIUM: "Network connection issue. Trying to reconnect...",
        ErrorSeverity.HIGH: "Unable to connect. Please check your internet connection.",
        ErrorSeverity.CRITICAL: "No network connection. Please check your internet and try again.",
    },
    ErrorType.API: {
        ErrorSeverity.LOW: "Service is responding slowly. Please wait...",
        ErrorSeverity.MEDIUM: "Service temporarily unavailable. Retrying...",
        ErrorSeverity.HIGH: "Unable to reach the AI service. Please try again.",
        ErrorSeverity.CRITICAL: "AI service is currently unavailable. Please try again later.",
    },
    ErrorType.AUDIO: {
        ErrorSeverity.LOW: "Audio playback interrupted. Continuing...",
        ErrorSeverity.MEDIUM: "Audio issue detected. Switching to text mode...",
        ErrorSeverity.HIGH: "Unable to play audio. Please check your speakers.",
        ErrorSeverity.CRITICAL: "Audio system unavailable. Text mode only.",
    },
    ErrorType.SPEECH_RECOGNITION: {
        ErrorSeverity.LOW: "Having trouble hearing you. Please speak clearly...",
        ErrorSeverity.MEDIUM: "Speech recognition interrupted. Please try again...",
        ErrorSeverity.HIGH: "Unable to access microphone. Please check permissions.",
        ErrorSeverity.CRITICAL: "Speech recognition unavailable. Please use text input.",
    },
    ErrorType.INITIALIZATION: {
        ErrorSeverity.LOW: "Starting up... Please wait.",
        ErrorSeverity.MEDIUM: "Setup taking longer than expected...",
        ErrorSeverity.HIGH: "Unable to start session. Please refresh the page.",
        ErrorSeverity.CRITICAL: "Startup failed. Please check your API key and refresh.",
    },
    ErrorType.VALIDATION: {
        ErrorSeverity.LOW: "Please check your input.",
        ErrorSeverity.MEDIUM: "Invalid input detected. Please try again.",
        ErrorSeverity.HIGH: "Unable to process request. Please check your input.",
        ErrorSeverity.CRITICAL: "Request blocked due to invalid input.",
    },
    ErrorType.UNKNOWN: {
        ErrorSeverity.LOW: "Minor issue detected. Continuing...",
        ErrorSeverity.MEDIUM: "Something went wrong. Trying to recover...",
        ErrorSeverity.HIGH: "Unexpected error occurred. Please try again.",
        ErrorSeverity.CRITICAL: "Critical error. Please refresh the page.",
    },
}


def coerce_enum(enum_cls, value: Any) -> Any:
    """Return ``value`` as a member of ``enum_cls`` when it names one."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return value


def user_message_for(error_type: Any, severity: Any) -> str:
    """Look up the user-facing message, falling back for unlisted combinations."""
    try:
        by_severity = USER_MESSAGES.get(coerce_enum(ErrorType, error_type)) or {}
        return by_severity.get(coerce_enum(ErrorSeverity, severity)) or DEFAULT_USER_MESSAGE
    except TypeError:
        # unhashable type or severity values
        return DEFAULT_USER_MESSAGE


class AppError(BaseModel):
    """Structured failure record. Immutable once created."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    type: Union[ErrorType, str]
    severity: Union[ErrorSeverity, str]
    message: str
    original_error: Optional[BaseException] = None
    context: Optional[Dict[str, Any]] = None
    timestamp: str
    retryable: bool
    user_message: str

    @property
    def type_value(self) -> str:
        return self.type.value if isinstance(self.type, Enum) else str(self.type)

    @property
    def severity_value(self) -> str:
        return self.severity.value if isinstance(self.severity, Enum) else str(self.severity)

    def to_record(self) -> "ErrorRecord":
        """Flatten into a serializable history entry."""
        original = None
        if self.original_error is not None:
            original = OriginalErrorInfo.from_exception(self.original_error)
        return ErrorRecord(
            id=self.id,
            type=self.type_value,
            severity=self.severity_value,
            message=self.message,
            original_error=original,
            context=self.context,
            timestamp=self.timestamp,
            retryable=self.retryable,
            user_message=self.user_message,
        )


class OriginalErrorInfo(BaseModel):
    name: str
    message: str
    stack: Optional[str] = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "OriginalErrorInfo":
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        return cls(name=type(error).__name__, message=str(error), stack=stack)


class ErrorRecord(BaseModel):
    """An AppError as it is stored in the persisted history."""
    id: str
    type: str
    severity: str
    message: str
    original_error: Optional[OriginalErrorInfo] = None
    context: Optional[Dict[str, Any]] = None
    timestamp: str
    retryable: bool
    user_message: str = Field(default="")


class CircuitOpenError(Exception):
    """Raised when a call is rejected by an open circuit."""

    def __init__(self, name: Optional[str] = None):
        self.name = name
        super().__init__("Circuit breaker is open")


class RateLimitExceededError(Exception):
    """Raised when the token bucket has no token available."""

    def __init__(self):
        super().__init__("Rate limit exceeded")


class OperationTimeoutError(Exception):
    """Raised when an operation does not finish within its time limit."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Operation timed out after {round(timeout * 1000)}ms")


class ServiceError(Exception):
    """
    Failure surfaced to callers of the chat service.

    ``str(error)`` is the sanitized user message; the full record is
    available as ``app_error`` for logging and diagnostics.
    """

    def __init__(self, app_error: AppError):
        self.app_error = app_error
        super().__init__(app_error.user_message)

    @property
    def user_message(self) -> str:
        return self.app_error.user_message
