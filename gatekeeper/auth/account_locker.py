"""
Auth - Verrouillage de comptes

Verrouillage temporaire après plusieurs échecs d'identification
consécutifs. Un compte verrouillé est rejeté à l'étape identifiants avec
la même erreur générique qu'un mot de passe faux.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .interfaces import AccountLockStatus, IAccountLocker
from ..core.interfaces import LockoutSettings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountLocker(IAccountLocker):
    """
    Compteur d'échecs par principal.

    Les échecs plus anciens que la durée de verrouillage sont oubliés; un
    verrou expiré est levé à la consultation suivante.
    """

    def __init__(
        self,
        settings: Optional[LockoutSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Args:
            settings: Nombre d'échecs et durée du verrouillage (défaut: 5, 15 min)
            clock: Horloge UTC (injectable pour les tests)
        """
        settings = settings or LockoutSettings()
        self._max_failures = settings.max_failures
        self._duration = timedelta(seconds=settings.duration_seconds)
        self._clock = clock

        self._failures: Dict[str, List[datetime]] = {}
        self._locks: Dict[str, datetime] = {}  # principal_id -> locked_until

    @property
    def max_failures(self) -> int:
        return self._max_failures

    def record_failure(self, principal_id: str) -> AccountLockStatus:
        """
        Enregistre un échec et verrouille au seuil.

        Returns:
            Statut du compte après enregistrement
        """
        if self.is_locked(principal_id):
            return self.get_status(principal_id)

        now = self._clock()
        self._cleanup_old_failures(principal_id)
        failures = self._failures.setdefault(principal_id, [])
        failures.append(now)

        locked_until = None
        if len(failures) >= self._max_failures:
            locked_until = now + self._duration
            self._locks[principal_id] = locked_until

        return AccountLockStatus(
            principal_id=principal_id,
            locked=locked_until is not None,
            locked_until=locked_until,
            failure_count=len(failures),
        )

    def record_success(self, principal_id: str) -> None:
        """Réinitialise le compteur après identification réussie."""
        self._failures.pop(principal_id, None)

    def is_locked(self, principal_id: str) -> bool:
        locked_until = self._locks.get(principal_id)
        if locked_until is None:
            return False
        if self._clock() >= locked_until:
            # Auto-déverrouillage
            del self._locks[principal_id]
            self._failures.pop(principal_id, None)
            return False
        return True

    def unlock(self, principal_id: str) -> bool:
        """Déverrouillage manuel (action admin)."""
        self._failures.pop(principal_id, None)
        return self._locks.pop(principal_id, None) is not None

    def get_status(self, principal_id: str) -> AccountLockStatus:
        locked = self.is_locked(principal_id)
        self._cleanup_old_failures(principal_id)
        return AccountLockStatus(
            principal_id=principal_id,
            locked=locked,
            locked_until=self._locks.get(principal_id) if locked else None,
            failure_count=len(self._failures.get(principal_id, [])),
        )

    def get_remaining_attempts(self, principal_id: str) -> int:
        if self.is_locked(principal_id):
            return 0
        self._cleanup_old_failures(principal_id)
        return max(0, self._max_failures - len(self._failures.get(principal_id, [])))

    def _cleanup_old_failures(self, principal_id: str) -> None:
        if principal_id not in self._failures:
            return
        cutoff = self._clock() - self._duration
        recent = [t for t in self._failures[principal_id] if t > cutoff]
        if recent:
            self._failures[principal_id] = recent
        else:
            del self._failures[principal_id]
