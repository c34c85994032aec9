"""
Retry Tracker - per-workflow retry counters with exponential backoff.
"""
import logging
import threading
from typing import Dict, Optional
logger = logging.getLogger(__name__)
MAX_RETRY_ATTEMPTS = 3
BASE_RETRY_DELAY_MS = 1000
# Lower-cased substrings that mark an error message as retryable
TRANSIENT_ERROR_PATTERNS = (
    "timeout",
    "network",
    "connection",
    "rate limit",
    "temporarily unavailable",
    "service unavailable",
    "too many requests",
    "econnrefused",
    "enotfound",
    "etimedout",
)
def calculate_backoff_delay(retry_count: int, base_delay_ms: int = BASE_RETRY_DELAY_MS) -> int:
    """
    Exponential backoff delay for a retry attempt.
    Args:
        retry_count: 1-based retry attempt number
        base_delay_ms: Delay of the first attempt
    Returns:
        Delay in milliseconds: base * 2^(n-1)
    """
    if retry_count < 1:
        return 0
    return base_delay_ms * (2 ** (retry_count - 1))
def is_transient_error(message: Optional[str]) -> bool:
    """Return True if the error message looks retryable."""
    if not message:
        return False
    lowered = message.lower()
    return any(pattern in lowered for pattern in TRANSIENT_ERROR_PATTERNS)
class RetryTracker:
    """
    Retry counts keyed by workflow id.
    Each id is tracked independently; clearing one leaves the rest intact.
    """
    def __init__(self, max_retries: int = MAX_RETRY_ATTEMPTS):
        self.max_retries = max_retries
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()
    def get(self, key: str) -> int:
        with self._lock:
            return self._counts.get(key, 0)
    def increment(self, key: str) -> int:
        """Increment and return the new retry count."""
        with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
        logger.debug(f"Retry count for {key} is now {count}/{self.max_retries}")
        return count
    def is_retry_limit_reached(self, key: str) -> bool:
        return self.get(key) >= self.max_retries
    def clear(self, key: str) -> None:
        with self._lock:
            self._counts.pop(key, None)
    def clear_all(self) -> None:
        with self._lock:
            self._counts.clear()
