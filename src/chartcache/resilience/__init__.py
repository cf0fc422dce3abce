"""Retry executor and fetch error classification."""

from chartcache.resilience.errors import (
    ErrorClassification,
    classify,
    final_message,
    is_retryable,
    should_retry,
)
from chartcache.resilience.retry import RetryPolicy, with_retry

__all__ = [
    "ErrorClassification",
    "RetryPolicy",
    "classify",
    "final_message",
    "is_retryable",
    "should_retry",
    "with_retry",
]
