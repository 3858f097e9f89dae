"""Logging helpers for the chat client."""

from .logging import ServiceLogger

__all__ = ["ServiceLogger"]
