"""Managers module - session registry and retry tracking."""
from .retry_tracker import RetryTracker, calculate_backoff_delay, is_transient_error
__all__ = [
    "RetryTracker",
    "calculate_backoff_delay",
    "is_transient_error",
]
