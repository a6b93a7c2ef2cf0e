"""
Notify - Retrying Notifier

Enveloppe un notifier externe avec des retries bornés (backoff
exponentiel, timeout par tentative).
"""

from datetime import datetime
from typing import Optional

from ..auth.interfaces import INotifier
from ..core.interfaces import DeliverySettings
from ..logging.interfaces import IStructuredLogger
from ..network.interfaces import IRetryHandler, RetryConfig
from ..network.retry_handler import MaxRetriesExceededError, RetryHandler


class RetryingNotifier(INotifier):
    """
    Notifier avec retries.

    Les erreurs transitoires (ConnectionError, TimeoutError) sont retentées;
    toute autre erreur est propagée immédiatement.

    Example:
        notifier = RetryingNotifier(SmtpNotifier(...), DeliverySettings(max_attempts=3))
    """

    def __init__(
        self,
        inner: INotifier,
        settings: Optional[DeliverySettings] = None,
        retry_handler: Optional[IRetryHandler] = None,
        logger: Optional[IStructuredLogger] = None,
    ):
        settings = settings or DeliverySettings()
        self._inner = inner
        self._config = RetryConfig(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            max_delay=settings.max_delay,
            attempt_timeout=settings.timeout_seconds,
        )
        self._retry = retry_handler or RetryHandler(self._config)
        self._logger = logger

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def deliver(
        self,
        principal_id: str,
        destination: Optional[str],
        code: str,
        expires_at: datetime,
    ) -> None:
        """
        Raises:
            MaxRetriesExceededError: Échecs transitoires jusqu'à épuisement
            Exception: Première erreur non retryable du notifier
        """
        result = await self._retry.execute_with_retry(
            self._inner.deliver,
            principal_id,
            destination,
            code,
            expires_at,
            config=self._config,
        )
        if result.success:
            if self._logger and result.attempts > 1:
                self._logger.info("otp delivered after retry", principal_id=principal_id, attempts=result.attempts)
            return

        error = result.last_error
        if self._logger:
            self._logger.warn(
                "otp delivery gave up",
                principal_id=principal_id,
                attempts=result.attempts,
                error=type(error).__name__ if error else None,
            )
        if error is not None and not isinstance(error, self._config.retryable_exceptions):
            raise error
        raise MaxRetriesExceededError(result.attempts, error)
