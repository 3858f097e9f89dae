"""Configuration module for the chat client."""

from .settings import ChatServiceConfig, get_api_key, get_error_store_path

# Import all constants
from .constants import *

__all__ = [
    "ChatServiceConfig",
    "get_api_key",
    "get_error_store_path",
]
