"""
Auth - OTP Challenge Manager Implementation

Codes à usage unique pour le second facteur.

Garanties:
    - Au plus un challenge vivant par principal: émettre en remplace un autre
    - Un code n'est jamais stocké en clair (HMAC-SHA256 avec clé serveur)
    - Un challenge consommé ne vérifie plus jamais
    - Émission et vérification sont sérialisées par principal
"""

import secrets
import string
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .errors import (
    AuthError,
    DeliveryFailedError,
    NoActiveChallengeError,
    OTPAttemptsExceededError,
    OTPConsumedError,
    OTPExpiredError,
    OTPMismatchError,
)
from .interfaces import (
    IChallengeStore,
    INotifier,
    IOTPChallengeManager,
    IssuedChallenge,
    OTPChallenge,
)
from ..audit.interfaces import AuditEventType, AuditOutcome, IAuditEmitter
from ..core.interfaces import ICryptoProvider, OTPSettings
from ..logging.interfaces import IStructuredLogger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


NUMERIC_ALPHABET = string.digits
# Sans 0/O ni 1/I pour la saisie manuelle
ALPHANUMERIC_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

REASON_VERIFIED = "verified"
REASON_SUPERSEDED = "superseded"
REASON_EXPIRED = "expired"


class OTPChallengeManager(IOTPChallengeManager):
    """
    Gestionnaire des challenges OTP.

    Example:
        manager = OTPChallengeManager(store, notifier, crypto)
        issued = await manager.issue("user-1", "user@example.com")
        await manager.verify("user-1", "493817")
    """

    def __init__(
        self,
        store: IChallengeStore,
        notifier: INotifier,
        crypto_provider: ICryptoProvider,
        settings: Optional[OTPSettings] = None,
        audit_emitter: Optional[IAuditEmitter] = None,
        logger: Optional[IStructuredLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            store: Stockage des challenges
            notifier: Livraison hors bande (avec ses propres retries)
            crypto_provider: Condensé HMAC des codes
            settings: Longueur, alphabet, TTL, tentatives max
            audit_emitter: Journal d'audit
            logger: Log structuré
            clock: Horloge UTC (injectable pour les tests)
        """
        self._store = store
        self._notifier = notifier
        self._crypto = crypto_provider
        self._settings = settings or OTPSettings()
        self._audit = audit_emitter
        self._logger = logger
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._settings.max_attempts

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.ttl_seconds)

    def _alphabet(self) -> str:
        return ALPHANUMERIC_ALPHABET if self._settings.alphabet == "alphanumeric" else NUMERIC_ALPHABET

    def generate_code(self) -> str:
        """Code de longueur fixe issu de secrets (source cryptographique)."""
        alphabet = self._alphabet()
        return "".join(secrets.choice(alphabet) for _ in range(self._settings.length))

    def _normalize(self, code: str) -> str:
        code = (code or "").strip()
        if self._settings.alphabet == "alphanumeric":
            code = code.upper()
        return code

    def _digest(self, code: str, challenge_id: str) -> str:
        return self._crypto.keyed_digest(self._normalize(code), context=challenge_id)

    async def issue(self, principal_id: str, destination: Optional[str] = None) -> IssuedChallenge:
        """
        Émet un nouveau challenge et livre le code.

        Tout challenge vivant du principal est d'abord marqué consommé
        (motif "superseded"). La livraison a lieu hors verrou; son échec
        laisse le challenge valide.

        Raises:
            ValueError: principal_id vide
            DeliveryFailedError: Livraison échouée après retries du notifier
        """
        if not principal_id:
            raise ValueError("principal_id est obligatoire")

        code = self.generate_code()

        async with self._store.lock(principal_id):
            now = self._clock()
            superseded = 0
            for previous in await self._store.list_for_principal(principal_id):
                if previous.is_live(now):
                    previous.consumed = True
                    previous.consumed_reason = REASON_SUPERSEDED
                    await self._store.save(previous)
                    superseded += 1

            challenge_id = str(uuid.uuid4())
            challenge = OTPChallenge(
                challenge_id=challenge_id,
                principal_id=principal_id,
                code_hash=self._digest(code, challenge_id),
                issued_at=now,
                expires_at=now + self.ttl,
            )
            await self._store.insert(challenge)

        issued = IssuedChallenge(challenge_id=challenge_id, principal_id=principal_id, expires_at=challenge.expires_at)
        await self._emit(
            AuditEventType.OTP_ISSUED,
            principal_id,
            "issue",
            AuditOutcome.SUCCESS,
            {"challenge_id": challenge_id, "superseded": superseded},
        )

        try:
            await self._notifier.deliver(principal_id, destination, code, challenge.expires_at)
        except Exception as e:
            if self._logger:
                self._logger.warn(
                    "otp delivery failed",
                    principal_id=principal_id,
                    challenge_id=challenge_id,
                    error=type(e).__name__,
                )
            await self._emit(
                AuditEventType.OTP_DELIVERY_FAILED,
                principal_id,
                "deliver",
                AuditOutcome.FAILURE,
                {"challenge_id": challenge_id, "error": type(e).__name__},
            )
            raise DeliveryFailedError(challenge_id, challenge.expires_at, cause=e) from e

        return issued

    async def verify(self, principal_id: str, code: str, challenge_id: Optional[str] = None) -> IssuedChallenge:
        """
        Vérifie un code.

        Sans challenge_id, le challenge le plus récent du principal est
        utilisé. Ordre des contrôles: existence, consommation, expiration,
        tentatives, comparaison.

        Raises:
            NoActiveChallengeError: Aucun challenge pour ce principal
            OTPConsumedError: Challenge déjà utilisé ou remplacé
            OTPExpiredError: Challenge expiré (marqué consommé)
            OTPAttemptsExceededError: Tentatives épuisées, code non examiné
            OTPMismatchError: Code incorrect (tentative comptée)
        """
        try:
            challenge = await self._verify_locked(principal_id, code, challenge_id)
        except AuthError as e:
            await self._emit(
                AuditEventType.OTP_REJECTED,
                principal_id or "anonymous",
                "verify",
                AuditOutcome.FAILURE,
                {"reason": e.code, "challenge_id": challenge_id},
            )
            raise

        await self._emit(
            AuditEventType.OTP_VERIFIED,
            principal_id,
            "verify",
            AuditOutcome.SUCCESS,
            {"challenge_id": challenge.challenge_id},
        )
        return IssuedChallenge(
            challenge_id=challenge.challenge_id,
            principal_id=principal_id,
            expires_at=challenge.expires_at,
        )

    async def _verify_locked(self, principal_id: str, code: str, challenge_id: Optional[str]) -> OTPChallenge:
        if not principal_id:
            raise NoActiveChallengeError()

        async with self._store.lock(principal_id):
            if challenge_id:
                challenge = await self._store.get(challenge_id)
            else:
                challenge = await self._store.latest_for_principal(principal_id)

            if challenge is None or challenge.principal_id != principal_id:
                raise NoActiveChallengeError()

            if challenge.consumed:
                if challenge.consumed_reason == REASON_EXPIRED:
                    raise OTPExpiredError()
                raise OTPConsumedError()

            now = self._clock()
            if now > challenge.expires_at:
                challenge.consumed = True
                challenge.consumed_reason = REASON_EXPIRED
                await self._store.save(challenge)
                raise OTPExpiredError()

            if challenge.attempts >= self._settings.max_attempts:
                raise OTPAttemptsExceededError()

            candidate = self._digest(code, challenge.challenge_id)
            if not self._crypto.constant_time_equals(candidate, challenge.code_hash):
                challenge.attempts += 1
                await self._store.save(challenge)
                raise OTPMismatchError(max(self._settings.max_attempts - challenge.attempts, 0))

            challenge.consumed = True
            challenge.consumed_reason = REASON_VERIFIED
            await self._store.save(challenge)
            return challenge

    async def remaining_seconds(self, principal_id: str) -> int:
        """Secondes restantes du challenge vivant (0 si aucun)."""
        challenge = await self._store.latest_for_principal(principal_id)
        now = self._clock()
        if challenge is None or not challenge.is_live(now):
            return 0
        return max(0, int((challenge.expires_at - now).total_seconds()))

    async def has_live_challenge(self, principal_id: str) -> bool:
        challenge = await self._store.latest_for_principal(principal_id)
        return bool(challenge and challenge.is_live(self._clock()))

    async def cleanup_expired(self) -> int:
        """Purge les challenges expirés."""
        return await self._store.delete_expired(self._clock())

    async def _emit(self, event_type, principal_id, transition, outcome, metadata) -> None:
        if self._audit:
            await self._audit.emit_event(event_type, principal_id, transition, outcome, metadata)
