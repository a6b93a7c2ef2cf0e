"""
Livraison hors bande des codes OTP.
"""

from .retrying_notifier import RetryingNotifier
from .outbox_notifier import OutboxNotifier, OutboxMessage

__all__ = [
    # Data classes
    "OutboxMessage",
    # Implementations
    "RetryingNotifier",
    "OutboxNotifier",
]
