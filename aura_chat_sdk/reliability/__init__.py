"""Reliability layer for the chat client.

This layer handles:
- Retry logic with exponential backoff and jitter
- Circuit breaker pattern
- Token bucket rate limiting
- Error taxonomy, classification and dispatch
- Persisted error history
"""

from .errors import (
    AppError,
    CircuitOpenError,
    ErrorRecord,
    ErrorSeverity,
    ErrorType,
    OperationTimeoutError,
    RateLimitExceededError,
    ServiceError,
)
from .retry import (
    API_RETRY,
    NETWORK_RETRY,
    RetryManager,
    RetryOptions,
    RetryResult,
    is_transient_error,
    retry_api_call,
    retry_network_request,
)
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .rate_limiter import RateLimiter
from .storage import InMemoryStore, JsonFileStore, KeyValueStore
from .error_service import ErrorService

__all__ = [
    "AppError",
    "CircuitOpenError",
    "ErrorRecord",
    "ErrorSeverity",
    "ErrorType",
    "OperationTimeoutError",
    "RateLimitExceededError",
    "ServiceError",
    "API_RETRY",
    "NETWORK_RETRY",
    "RetryManager",
    "RetryOptions",
    "RetryResult",
    "is_transient_error",
    "retry_api_call",
    "retry_network_request",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "RateLimiter",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "ErrorService",
]
