"""
Chat service configuration.

Values default to the production settings of the chat client; the API key
and error store location are read from the environment (``.env`` files are
honoured through python-dotenv).
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from .constants import (
    API_KEY_ENV_VARS,
    DEFAULT_ERROR_STORE_PATH,
    DEFAULT_MODEL,
    DEFAULT_SYSTEM_INSTRUCTION,
    ERROR_STORE_ENV_VAR,
)


class ChatServiceConfig(BaseModel):
    """
    Settings for the resilient chat service.

    Durations are in seconds.
    """
    # Model parameters
    model: str = Field(default=DEFAULT_MODEL, description="Chat model identifier")
    system_instruction: str = Field(default=DEFAULT_SYSTEM_INSTRUCTION)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1)
    timeout: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout")

    # Retry policy for send and stream
    max_retries: int = Field(default=5, ge=1, description="Attempts per send, including the first")
    retry_base_delay: float = Field(default=2.0, ge=0.0)
    retry_backoff_multiplier: float = Field(default=1.5, gt=0.0)
    retry_max_delay: float = Field(default=10.0, ge=0.0)

    # Connectivity probe run by initialize()
    probe_attempts: int = Field(default=3, ge=1)
    probe_base_delay: float = Field(default=1.0, ge=0.0)

    # Circuit breaker
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=30.0, ge=0.0)

    @model_validator(mode="after")
    def check_retry_delays(self):
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be greater than or equal to retry_base_delay")
        return self


def get_api_key() -> Optional[str]:
    """Resolve the API key from the environment."""
    load_dotenv()
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None


def get_error_store_path() -> Path:
    load_dotenv()
    return Path(os.getenv(ERROR_STORE_ENV_VAR, DEFAULT_ERROR_STORE_PATH)).expanduser()
