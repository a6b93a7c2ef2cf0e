"""
Network - Retry Handler

Retries bornés avec backoff exponentiel et timeout par tentative.
"""

import asyncio
import functools
import inspect
from typing import Any, Callable, Dict, Optional, TypeVar

from .interfaces import IRetryHandler, RetryConfig, RetryResult

T = TypeVar("T")


class MaxRetriesExceededError(Exception):
    """Nombre max de tentatives atteint."""

    def __init__(self, attempts: int, last_error: Optional[Exception]) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")


class RetryHandler(IRetryHandler):
    """
    Gestion retries avec backoff exponentiel.

    Les erreurs non retryables interrompent immédiatement la boucle.
    Un dépassement de attempt_timeout compte comme une erreur retryable.
    """

    def __init__(self, default_config: Optional[RetryConfig] = None) -> None:
        """
        Args:
            default_config: Configuration par défaut (optionnel)
        """
        self._default_config = default_config or RetryConfig()
        self._retry_stats: Dict[str, int] = {
            "total_retries": 0,
            "successful_retries": 0,
            "failed_retries": 0,
        }

    @property
    def default_config(self) -> RetryConfig:
        return self._default_config

    async def execute_with_retry(
        self,
        func: Callable[..., T],
        *args: Any,
        config: Optional[RetryConfig] = None,
        **kwargs: Any,
    ) -> RetryResult:
        """
        Exécute func (sync ou async) avec au plus max_attempts tentatives.

        Backoff: delay = min(initial * (base ^ attempt), max_delay)
        - Attempt 0: 1s
        - Attempt 1: 2s
        - Attempt 2: 4s

        Returns:
            RetryResult avec succès/échec et détails
        """
        retry_config = config or self._default_config
        last_error: Optional[Exception] = None
        total_delay: float = 0.0

        for attempt in range(retry_config.max_attempts):
            try:
                result = await self._run_once(func, retry_config, *args, **kwargs)

                if attempt > 0:
                    self._retry_stats["successful_retries"] += 1

                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt + 1,
                    total_delay=total_delay,
                    last_error=None,
                )

            except Exception as e:
                last_error = e
                self._retry_stats["total_retries"] += 1

                if not self.is_retryable(e, retry_config):
                    return RetryResult(
                        success=False,
                        result=None,
                        attempts=attempt + 1,
                        total_delay=total_delay,
                        last_error=e,
                    )

                if attempt < retry_config.max_attempts - 1:
                    delay = self.calculate_delay(attempt, retry_config)
                    total_delay += delay
                    await asyncio.sleep(delay)

        self._retry_stats["failed_retries"] += 1

        return RetryResult(
            success=False,
            result=None,
            attempts=retry_config.max_attempts,
            total_delay=total_delay,
            last_error=last_error,
        )

    async def _run_once(self, func: Callable[..., Any], config: RetryConfig, *args: Any, **kwargs: Any) -> Any:
        result = func(*args, **kwargs)
        if not inspect.isawaitable(result):
            return result
        if config.attempt_timeout is None:
            return await result
        return await asyncio.wait_for(result, timeout=config.attempt_timeout)

    def calculate_delay(self, attempt: int, config: RetryConfig) -> float:
        delay = config.initial_delay * (config.exponential_base**attempt)
        return min(delay, config.max_delay)

    def is_retryable(self, error: Exception, config: RetryConfig) -> bool:
        return isinstance(error, config.retryable_exceptions)

    def get_retry_stats(self) -> Dict[str, int]:
        return dict(self._retry_stats)


def with_retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    attempt_timeout: Optional[float] = None,
) -> Callable:
    """
    Decorator pour retry automatique d'une coroutine.

    Usage:
        @with_retry(max_attempts=3, attempt_timeout=5.0)
        async def send():
            ...

    Raises:
        MaxRetriesExceededError: Toutes les tentatives ont échoué
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            handler = RetryHandler()
            config = RetryConfig(
                max_attempts=max_attempts,
                initial_delay=initial_delay,
                max_delay=max_delay,
                attempt_timeout=attempt_timeout,
            )
            result = await handler.execute_with_retry(func, *args, config=config, **kwargs)
            if not result.success:
                raise MaxRetriesExceededError(result.attempts, result.last_error)
            return result.result

        return wrapper

    return decorator
