"""
Structured logging for the chat stack.

Every line is prefixed with ``[component=... key=value ...]`` so provider
calls, stream summaries and service events can be grepped by field.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional


class ServiceLogger:
    """Key=value logger bound to one component (``chat_service``, ``gemini``)."""

    def __init__(self, component: str):
        self.component = component
        self.logger = logging.getLogger(f"aura_chat_sdk.{component}")

    def _format(self, message: str, fields: Dict[str, Any]) -> str:
        parts = [f"component={self.component}"]
        parts.extend(f"{key}={value}" for key, value in fields.items() if value is not None)
        return f"[{' '.join(parts)}] {message}"

    def log(self, level: int, message: str, **fields):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format(message, fields))

    def debug(self, message: str, **fields):
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, error: Optional[BaseException] = None, **fields):
        if error is not None:
            fields["error_type"] = type(error).__name__
            if getattr(error, "status_code", None) is not None:
                fields["status_code"] = error.status_code
            fields["error_msg"] = str(error)
        self.log(logging.ERROR, message, **fields)

    @contextmanager
    def track_call(self, operation: str, model: str, **fields) -> Iterator[Dict[str, Any]]:
        """
        Time one upstream call.

        Yields the field dict logged on completion; the caller may add
        entries such as ``status_code`` once the response is known.
        A failure is logged with the error's type and status, then re-raised.
        """
        call: Dict[str, Any] = {"call_id": uuid.uuid4().hex[:8], "model": model, **fields}
        started = time.monotonic()
        self.debug(f"Starting {operation}", **call)

        try:
            yield call
        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self.error(f"{operation} failed", error=e, duration_ms=elapsed_ms, **call)
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self.info(f"{operation} completed", duration_ms=elapsed_ms, **call)

    def log_stream_summary(self, model: str, chunks: int, total_chars: int, audio_chunks: int,
                           duration: float, breaker_state: str):
        chars_per_second = total_chars / duration if duration > 0 else 0
        self.info(
            "Stream finished",
            model=model,
            chunks=chunks,
            chars=total_chars,
            audio_chunks=audio_chunks,
            duration_ms=int(duration * 1000),
            chars_per_second=int(chars_per_second),
            breaker_state=breaker_state,
        )
