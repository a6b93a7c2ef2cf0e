"""
Notify - Outbox Notifier

Notifier en mémoire: les messages sont conservés dans une boîte d'envoi au
lieu d'être expédiés. Sert en développement local et dans les tests.

Note:
    Ne jamais utiliser en production: les codes restent lisibles en mémoire.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, List, Optional

from ..auth.interfaces import INotifier
from ..logging.interfaces import IStructuredLogger


@dataclass(frozen=True)
class OutboxMessage:
    principal_id: str
    destination: Optional[str]
    code: str
    expires_at: datetime


class OutboxNotifier(INotifier):
    """Boîte d'envoi bornée."""

    def __init__(self, logger: Optional[IStructuredLogger] = None, max_messages: int = 1000):
        self._messages: Deque[OutboxMessage] = deque(maxlen=max_messages)
        self._logger = logger

    async def deliver(
        self,
        principal_id: str,
        destination: Optional[str],
        code: str,
        expires_at: datetime,
    ) -> None:
        self._messages.append(OutboxMessage(principal_id, destination, code, expires_at))
        if self._logger:
            # Le code est masqué par le logger
            self._logger.debug("otp queued in outbox", principal_id=principal_id, code=code)

    def messages(self, principal_id: Optional[str] = None) -> List[OutboxMessage]:
        if principal_id is None:
            return list(self._messages)
        return [m for m in self._messages if m.principal_id == principal_id]

    def last_code(self, principal_id: str) -> Optional[str]:
        """Dernier code envoyé à un principal."""
        for message in reversed(self._messages):
            if message.principal_id == principal_id:
                return message.code
        return None

    def clear(self) -> None:
        self._messages.clear()
