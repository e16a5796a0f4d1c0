"""Shared utilities."""

from .logging import get_logger, mask
from .retry import RetryOutcome, RetryPolicy

__all__ = ["get_logger", "mask", "RetryOutcome", "RetryPolicy"]
