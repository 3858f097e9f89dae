"""HTTP API for the Aura chat client."""

from .api import create_router

__all__ = ["create_router"]
