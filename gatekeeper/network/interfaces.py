"""
Network - Interfaces

Retry avec backoff exponentiel et timeout par tentative, utilisé pour les
appels sortants vers les collaborateurs externes (notifier).
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration des retries.

    delay(attempt) = min(initial_delay * exponential_base ** attempt, max_delay)
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    attempt_timeout: Optional[float] = None  # secondes, None = pas de borne
    retryable_exceptions: tuple = field(
        default_factory=lambda: (ConnectionError, TimeoutError, asyncio.TimeoutError)
    )


@dataclass
class RetryResult:
    """Résultat d'une opération avec retry."""

    success: bool
    result: Optional[Any]
    attempts: int
    total_delay: float
    last_error: Optional[Exception]


class IRetryHandler(ABC):
    """Interface gestion retries."""

    @abstractmethod
    async def execute_with_retry(
        self,
        func: Callable[..., T],
        *args: Any,
        config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute func avec retry et backoff exponentiel.

        Returns:
            RetryResult avec succès/échec et détails
        """
        pass

    @abstractmethod
    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        """Délai avant la tentative suivante (attempt 0-indexed)."""
        pass

    @abstractmethod
    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        pass
