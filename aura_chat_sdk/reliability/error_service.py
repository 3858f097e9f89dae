"""
Error classification and dispatch service.

The ErrorService builds structured ``AppError`` records, decides whether
they are retryable, derives the user-facing message, keeps a bounded
persisted history, dispatches to one registered handler per error type,
and escalates critical errors to an optional reporter.

It is meant to be constructed once at application start and injected
into its consumers. ``ErrorService.get_instance()`` provides a lazily
built process-wide instance with the global exception hooks installed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import threading
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter

from ..config.constants import ERROR_STORAGE_KEY, MAX_STORED_ERRORS
from .errors import (
    AppError,
    ErrorRecord,
    ErrorSeverity,
    ErrorType,
    coerce_enum,
    user_message_for,
)
from .retry import message_contains
from .storage import InMemoryStore, KeyValueStore

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[AppError], None]
ErrorReporter = Callable[[AppError], None]

RETRYABLE_API_MARKERS = ("timeout", "503", "502", "rate limit")

_records_adapter = TypeAdapter(List[ErrorRecord])


class ErrorService:
    """Classifies, stores, dispatches and escalates application errors."""

    _instance: Optional["ErrorService"] = None

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        reporter: Optional[ErrorReporter] = None,
        storage_key: str = ERROR_STORAGE_KEY,
        max_stored_errors: int = MAX_STORED_ERRORS,
        install_hooks: bool = False,
    ):
        self._store = store if store is not None else InMemoryStore()
        self._reporter = reporter
        self.storage_key = storage_key
        self.max_stored_errors = max_stored_errors
        self._handlers: Dict[Any, ErrorHandler] = {}
        self._history_lock = threading.Lock()

        self._hooks_installed = False
        self._previous_excepthook = None
        self._previous_threading_excepthook = None
        self._hooked_loops: Dict[asyncio.AbstractEventLoop, Any] = {}

        if install_hooks:
            self.install_global_handlers()

    @classmethod
    def get_instance(cls) -> "ErrorService":
        """Return the process-wide instance, creating it on first use."""
        if cls._instance is None:
            cls._instance = cls(install_hooks=True)
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Drop the process-wide instance and restore the hooks it replaced."""
        if cls._instance is not None:
            cls._instance.uninstall_global_handlers()
            cls._instance = None

    @property
    def hooks_installed(self) -> bool:
        return self._hooks_installed

    def install_global_handlers(self):
        """Route uncaught exceptions and unhandled async failures through handle_error."""
        if self._hooks_installed:
            return
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_uncaught_exception
        self._previous_threading_excepthook = threading.excepthook
        threading.excepthook = self._handle_thread_exception
        self._hooks_installed = True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self.attach_to_loop(loop)

    def attach_to_loop(self, loop: asyncio.AbstractEventLoop):
        """Install the unhandled-exception handler on an event loop."""
        if loop in self._hooked_loops:
            return
        self._hooked_loops[loop] = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)

    def uninstall_global_handlers(self):
        if sys.excepthook == self._handle_uncaught_exception:
            sys.excepthook = self._previous_excepthook or sys.__excepthook__
        if threading.excepthook == self._handle_thread_exception:
            threading.excepthook = self._previous_threading_excepthook or threading.__excepthook__
        for loop, previous in self._hooked_loops.items():
            if not loop.is_closed():
                loop.set_exception_handler(previous)
        self._hooked_loops.clear()
        self._hooks_installed = False

    def _handle_uncaught_exception(self, exc_type, exc_value, exc_tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            context: Dict[str, Any] = {}
            frames = traceback.extract_tb(exc_tb) if exc_tb is not None else []
            if frames:
                context = {"filename": frames[-1].filename, "lineno": frames[-1].lineno}
            error = self.create_error(
                error_type=ErrorType.UNKNOWN,
                severity=ErrorSeverity.HIGH,
                message=str(exc_value) or "Uncaught error",
                original_error=exc_value,
                context=context,
            )
            self.handle_error(error)
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc_value, exc_tb)

    def _handle_thread_exception(self, args):
        if not issubclass(args.exc_type, SystemExit):
            error = self.create_error(
                error_type=ErrorType.UNKNOWN,
                severity=ErrorSeverity.HIGH,
                message=str(args.exc_value) or "Uncaught error",
                original_error=args.exc_value,
                context={"thread": args.thread.name if args.thread else None},
            )
            self.handle_error(error)
        previous = self._previous_threading_excepthook or threading.__excepthook__
        previous(args)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]):
        reason = context.get("message", "Unhandled exception in event loop")
        exception = context.get("exception")
        error = self.create_error(
            error_type=ErrorType.UNKNOWN,
            severity=ErrorSeverity.HIGH,
            message="Unhandled async exception",
            original_error=exception if exception is not None else Exception(str(reason)),
            context={"reason": reason},
        )
        self.handle_error(error)
        previous = self._hooked_loops.get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    def create_error(
        self,
        error_type: Any,
        severity: Any,
        message: str = "",
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> AppError:
        """
        Build an AppError.

        Args:
            error_type: ErrorType (unlisted values are kept as given)
            severity: ErrorSeverity
            message: Internal description of the failure
            original_error: Wrapped exception, if any
            context: Free-form diagnostic data
            retryable: Explicit override of the per-type default

        Returns:
            A new immutable AppError
        """
        error_type = coerce_enum(ErrorType, error_type)
        severity = coerce_enum(ErrorSeverity, severity)
        if retryable is None:
            retryable = self._is_retryable(error_type, original_error)

        return AppError(
            id=str(uuid.uuid4()),
            type=error_type,
            severity=severity,
            message=message,
            original_error=original_error,
            context=context,
            timestamp=datetime.now(timezone.utc).isoformat(),
            retryable=retryable,
            user_message=user_message_for(error_type, severity),
        )

    @staticmethod
    def _is_retryable(error_type: Any, original_error: Optional[BaseException]) -> bool:
        if error_type == ErrorType.NETWORK:
            return True

        # API errors depend on what the remote side said
        if error_type == ErrorType.API and original_error is not None:
            return message_contains(original_error, RETRYABLE_API_MARKERS)

        if error_type in (ErrorType.AUDIO, ErrorType.SPEECH_RECOGNITION):
            return True

        return False

    def create_network_error(self, message: str, original_error: Optional[BaseException] = None,
                             context: Optional[Dict[str, Any]] = None) -> AppError:
        return self.create_error(ErrorType.NETWORK, ErrorSeverity.MEDIUM, message, original_error, context)

    def create_api_error(self, message: str, original_error: Optional[BaseException] = None,
                         context: Optional[Dict[str, Any]] = None) -> AppError:
        return self.create_error(ErrorType.API, ErrorSeverity.HIGH, message, original_error, context)

    def create_audio_error(self, message: str, original_error: Optional[BaseException] = None,
                           context: Optional[Dict[str, Any]] = None) -> AppError:
        return self.create_error(ErrorType.AUDIO, ErrorSeverity.MEDIUM, message, original_error, context)

    def create_speech_recognition_error(self, message: str, original_error: Optional[BaseException] = None,
                                        context: Optional[Dict[str, Any]] = None) -> AppError:
        return self.create_error(
            ErrorType.SPEECH_RECOGNITION, ErrorSeverity.MEDIUM, message, original_error, context
        )

    def handle_error(self, error: AppError):
        """Log, store, dispatch and (for critical errors) escalate. Never raises."""
        logger.error(
            f"[{error.type_value}] {error.message}",
            extra={
                "error_id": error.id,
                "severity": error.severity_value,
                "timestamp": error.timestamp,
                "error_context": error.context,
                "original_error": repr(error.original_error) if error.original_error else None,
            }
        )

        self._store_error(error)

        handler = self._handlers.get(coerce_enum(ErrorType, error.type))
        if handler is not None:
            try:
                handler(error)
            except Exception as handler_error:  # noqa: BLE001
                logger.error(
                    f"Error handler failed: {handler_error}",
                    extra={"error_id": error.id, "error_type": error.type_value}
                )

        if error.severity == ErrorSeverity.CRITICAL:
            self._report_error(error)

    def _report_error(self, error: AppError):
        if self._reporter is None:
            logger.warning(f"Error reporting service not configured for error: {error.id}")
            return
        try:
            self._reporter(error)
        except Exception as report_error:  # noqa: BLE001
            logger.error(f"Error reporter failed for error {error.id}: {report_error}")

    def register_error_handler(self, error_type: Any, handler: ErrorHandler):
        """Register the handler for a type, replacing any previous one."""
        self._handlers[coerce_enum(ErrorType, error_type)] = handler

    def unregister_error_handler(self, error_type: Any):
        self._handlers.pop(coerce_enum(ErrorType, error_type), None)

    def _store_error(self, error: AppError):
        # Thread excepthook and event loop both write history
        try:
            with self._history_lock:
                records = self._load_raw_records()
                records.append(error.to_record().model_dump())
                if len(records) > self.max_stored_errors:
                    del records[:len(records) - self.max_stored_errors]
                self._store.set(self.storage_key, json.dumps(records, default=str))
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to store error: {e}")

    def _load_raw_records(self) -> List[Dict[str, Any]]:
        try:
            stored = self._store.get(self.storage_key)
            records = json.loads(stored) if stored else []
            if not isinstance(records, list):
                raise ValueError("stored error history is not a list")
            return records
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to retrieve stored errors: {e}")
            return []

    def get_stored_errors(self) -> List[ErrorRecord]:
        """Persisted error history, oldest first."""
        records = self._load_raw_records()
        try:
            return _records_adapter.validate_python(records)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to retrieve stored errors: {e}")
            return []

    def clear_stored_errors(self):
        try:
            with self._history_lock:
                self._store.remove(self.storage_key)
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to clear stored errors: {e}")
