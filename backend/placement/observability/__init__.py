"""Structured logging and per-operation context."""

from .context import get_operation_id, operation_context
from .logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger", "get_operation_id", "operation_context"]
