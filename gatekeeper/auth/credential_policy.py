"""
Auth - Credential Policy Implementation

Robustesse des mots de passe et rotation des identifiants.
"""

import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .errors import (
    InvalidCredentialsError,
    PasswordPolicyViolationError,
    PasswordReuseError,
)
from .interfaces import (
    Credential,
    ICredentialPolicy,
    ICredentialStore,
    ISessionManager,
    PasswordStrength,
    PasswordValidation,
    RotationResult,
)
from ..audit.interfaces import AuditEventType, AuditOutcome, IAuditEmitter
from ..core.interfaces import ICryptoProvider, PasswordSettings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_UPPERCASE = re.compile(r"[A-Z]")
_LOWERCASE = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile(r"[^A-Za-z0-9]")


class CredentialPolicy(ICredentialPolicy):
    """
    Politique de mot de passe.

    Règles, vérifiées indépendamment et toujours dans cet ordre:
        min_length, uppercase, lowercase, digit, special

    Example:
        policy = CredentialPolicy(store, crypto, session_manager=sessions)
        policy.validate("abc").violations
        # ["min_length", "uppercase", "digit", "special"]
    """

    RULE_MIN_LENGTH = "min_length"
    RULE_UPPERCASE = "uppercase"
    RULE_LOWERCASE = "lowercase"
    RULE_DIGIT = "digit"
    RULE_SPECIAL = "special"

    RULES: Tuple[str, ...] = (RULE_MIN_LENGTH, RULE_UPPERCASE, RULE_LOWERCASE, RULE_DIGIT, RULE_SPECIAL)

    _DUMMY_PASSWORD = "dummy-password-for-timing"

    def __init__(
        self,
        store: ICredentialStore,
        crypto_provider: ICryptoProvider,
        settings: Optional[PasswordSettings] = None,
        session_manager: Optional[ISessionManager] = None,
        audit_emitter: Optional[IAuditEmitter] = None,
        revoke_sessions_on_rotation: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            store: Stockage des identifiants
            crypto_provider: Hachage et comparaison en temps constant
            settings: Paramètres (longueur minimale)
            session_manager: Révocation des autres sessions après rotation
            audit_emitter: Journal d'audit
            revoke_sessions_on_rotation: Révoquer les autres sessions après rotation
            clock: Horloge UTC (injectable pour les tests)
        """
        self._store = store
        self._crypto = crypto_provider
        self._settings = settings or PasswordSettings()
        self._sessions = session_manager
        self._audit = audit_emitter
        self._revoke_on_rotation = revoke_sessions_on_rotation
        self._clock = clock
        self._dummy: Optional[Tuple[str, str]] = None

    # ── Règles ────────────────────────────────────────────────────────────

    def _satisfied(self, password: str) -> List[Tuple[str, bool]]:
        password = password or ""
        return [
            (self.RULE_MIN_LENGTH, len(password) >= self._settings.min_length),
            (self.RULE_UPPERCASE, bool(_UPPERCASE.search(password))),
            (self.RULE_LOWERCASE, bool(_LOWERCASE.search(password))),
            (self.RULE_DIGIT, bool(_DIGIT.search(password))),
            (self.RULE_SPECIAL, bool(_SPECIAL.search(password))),
        ]

    def validate(self, password: str) -> PasswordValidation:
        """
        Vérifie toutes les règles (pas fail-fast).

        Returns:
            PasswordValidation; violations dans l'ordre fixe des règles
        """
        violations = [rule for rule, ok in self._satisfied(password) if not ok]
        return PasswordValidation(valid=not violations, violations=violations)

    def strength(self, password: str) -> PasswordStrength:
        """≤2 règles satisfaites → Weak, 3-4 → Medium, 5 → Strong."""
        met = sum(1 for _, ok in self._satisfied(password) if ok)
        if met <= 2:
            return PasswordStrength.WEAK
        if met <= 4:
            return PasswordStrength.MEDIUM
        return PasswordStrength.STRONG

    # ── Vérification ──────────────────────────────────────────────────────

    def _check(self, credential: Optional[Credential], password: str) -> bool:
        if credential is None:
            # Même coût de hachage qu'un compte existant
            if self._dummy is None:
                self._dummy = self._crypto.hash_password(self._DUMMY_PASSWORD)
            self._crypto.verify_password(password or "", *self._dummy)
            return False
        return self._crypto.verify_password(password or "", credential.password_hash, credential.salt)

    async def verify(self, principal_id: Optional[str], password: str) -> bool:
        """
        Vérifie un mot de passe.

        Sans principal_id (email inconnu) le hachage est tout de même
        effectué contre un identifiant factice et False est retourné.
        """
        credential = await self._store.get_credential(principal_id) if principal_id else None
        return self._check(credential, password)

    async def requires_rotation(self, principal_id: str) -> bool:
        credential = await self._store.get_credential(principal_id)
        return bool(credential and credential.must_change_password)

    # ── Cycle de vie ──────────────────────────────────────────────────────

    async def provision(self, principal_id: str, password: str, must_change_password: bool = True) -> Credential:
        """
        Crée l'identifiant initial d'un principal.

        Raises:
            PasswordPolicyViolationError: Mot de passe non conforme
        """
        validation = self.validate(password)
        if not validation.valid:
            raise PasswordPolicyViolationError(validation.violations)

        password_hash, salt = self._crypto.hash_password(password)
        credential = Credential(
            principal_id=principal_id,
            password_hash=password_hash,
            salt=salt,
            must_change_password=must_change_password,
            updated_at=self._clock(),
        )
        async with self._store.lock(principal_id):
            await self._store.save_credential(credential)

        await self._emit(
            AuditEventType.CREDENTIAL_PROVISIONED,
            principal_id,
            "provision",
            AuditOutcome.SUCCESS,
            {"forced_rotation": must_change_password},
        )
        return credential

    async def rotate(
        self,
        principal_id: str,
        current_password: str,
        new_password: str,
        keep_session_id: Optional[str] = None,
    ) -> RotationResult:
        """
        Remplace le mot de passe.

        Ordre des contrôles: mot de passe actuel, politique, réutilisation.
        En cas de succès: nouveau hash salé, must_change_password levé,
        updated_at mis à jour, autres sessions révoquées (si activé).

        Args:
            principal_id: Principal concerné
            current_password: Mot de passe actuel
            new_password: Nouveau mot de passe
            keep_session_id: Session de l'appelant à conserver

        Raises:
            InvalidCredentialsError: Mot de passe actuel incorrect
            PasswordPolicyViolationError: Nouveau mot de passe non conforme
            PasswordReuseError: Nouveau mot de passe identique à l'actuel
        """
        async with self._store.lock(principal_id):
            credential = await self._store.get_credential(principal_id)

            if not self._check(credential, current_password):
                await self._reject(principal_id, InvalidCredentialsError.code)
                raise InvalidCredentialsError()

            validation = self.validate(new_password)
            if not validation.valid:
                await self._reject(principal_id, PasswordPolicyViolationError.code)
                raise PasswordPolicyViolationError(validation.violations)

            if self._crypto.constant_time_equals(new_password, current_password):
                await self._reject(principal_id, PasswordReuseError.code)
                raise PasswordReuseError()

            password_hash, salt = self._crypto.hash_password(new_password)
            now = self._clock()
            await self._store.save_credential(
                Credential(
                    principal_id=principal_id,
                    password_hash=password_hash,
                    salt=salt,
                    must_change_password=False,
                    updated_at=now,
                )
            )

        revoked = 0
        if self._revoke_on_rotation and self._sessions is not None:
            revoked = await self._sessions.revoke_all(
                principal_id, reason="password_rotation", except_session_id=keep_session_id
            )

        await self._emit(
            AuditEventType.PASSWORD_ROTATED,
            principal_id,
            "rotate",
            AuditOutcome.SUCCESS,
            {"revoked_sessions": revoked},
        )
        return RotationResult(principal_id=principal_id, updated_at=now, revoked_sessions=revoked)

    async def _reject(self, principal_id: str, reason: str) -> None:
        await self._emit(
            AuditEventType.PASSWORD_ROTATION_REJECTED,
            principal_id,
            "rotate",
            AuditOutcome.FAILURE,
            {"reason": reason},
        )

    async def _emit(self, event_type, principal_id, transition, outcome, metadata) -> None:
        if self._audit:
            await self._audit.emit_event(event_type, principal_id, transition, outcome, metadata)
