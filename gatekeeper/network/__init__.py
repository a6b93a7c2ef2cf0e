"""
Network: retries bornés avec backoff exponentiel et timeout par tentative.
"""

from .interfaces import RetryConfig, RetryResult, IRetryHandler
from .retry_handler import RetryHandler, MaxRetriesExceededError, with_retry

__all__ = [
    # Data classes
    "RetryConfig",
    "RetryResult",
    # Interfaces
    "IRetryHandler",
    # Implementations
    "RetryHandler",
    # Decorators
    "with_retry",
    # Exceptions
    "MaxRetriesExceededError",
]
