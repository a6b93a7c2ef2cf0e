"""
Auth - Login State Machine

Orchestration du parcours de connexion:

    AwaitingCredentials → CredentialsValid → [AwaitingOTP → OTPVerified]
        → [AwaitingPasswordChange] → Authenticated

Un parcours en attente est conservé côté serveur et adressé par un jeton
d'essai opaque. Toute erreur de l'étape identifiants, comme un jeton
d'essai inconnu ou expiré, est réduite à LoginFailedError.

Aucune session n'est émise tant qu'un changement de mot de passe imposé
n'a pas abouti.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .errors import DeliveryFailedError, LoginFailedError
from .interfaces import (
    IAccountLocker,
    ICredentialStore,
    ILoginAttemptStore,
    IssuedSession,
    LoginAttempt,
    LoginState,
    Principal,
)
from .credential_policy import CredentialPolicy
from .otp_manager import OTPChallengeManager
from .session_manager import SessionManager
from ..audit.interfaces import AuditEventType, AuditOutcome, IAuditEmitter
from ..core.interfaces import AuthSettings, ICryptoProvider
from ..logging.interfaces import IStructuredLogger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _transition(source: LoginState, target: LoginState) -> str:
    return f"{source.value}->{target.value}"


@dataclass(frozen=True)
class LoginStep:
    """
    Résultat d'une étape du parcours.

    attempt_token est renseigné tant que le parcours est en attente,
    session une fois Authenticated atteint.
    """

    state: LoginState
    principal_id: str
    attempt_token: Optional[str] = None
    session: Optional[IssuedSession] = None
    challenge_expires_at: Optional[datetime] = None

    @property
    def session_token(self) -> Optional[str]:
        return self.session.token if self.session else None


class AuthStateMachine:
    """
    Machine d'états du parcours de connexion.

    Example:
        step = await machine.begin("a@b.c", "Secret123!")
        if step.state is LoginState.AWAITING_OTP:
            step = await machine.submit_otp(step.attempt_token, "493817")
    """

    ATTEMPT_TOKEN_BYTES: int = 32
    UNKNOWN_PRINCIPAL: str = "unknown"

    def __init__(
        self,
        credential_store: ICredentialStore,
        attempt_store: ILoginAttemptStore,
        credential_policy: CredentialPolicy,
        otp_manager: OTPChallengeManager,
        session_manager: SessionManager,
        crypto_provider: ICryptoProvider,
        account_locker: Optional[IAccountLocker] = None,
        settings: Optional[AuthSettings] = None,
        audit_emitter: Optional[IAuditEmitter] = None,
        logger: Optional[IStructuredLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            credential_store: Principaux (recherche par email)
            attempt_store: Parcours en attente
            credential_policy: Vérification et rotation des mots de passe
            otp_manager: Second facteur
            session_manager: Émission de la session finale
            crypto_provider: Jetons d'essai
            account_locker: Verrouillage après échecs répétés
            settings: Rôles soumis à l'OTP, durée de vie des parcours
            audit_emitter: Une entrée par transition
            logger: Log structuré
            clock: Horloge UTC (injectable pour les tests)
        """
        self._credentials = credential_store
        self._attempts = attempt_store
        self._policy = credential_policy
        self._otp = otp_manager
        self._sessions = session_manager
        self._crypto = crypto_provider
        self._locker = account_locker
        self._settings = settings or AuthSettings()
        self._audit = audit_emitter
        self._logger = logger
        self._clock = clock

    def otp_required(self, principal: Principal) -> bool:
        """Exigence propre au principal, sinon politique du rôle."""
        if principal.otp_required is not None:
            return principal.otp_required
        roles = self._settings.otp_required_roles
        return roles is None or principal.role.value in roles

    # ── Étape identifiants ────────────────────────────────────────────────

    async def begin(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginStep:
        """
        Vérifie email et mot de passe.

        Returns:
            LoginStep en AwaitingOTP, AwaitingPasswordChange ou Authenticated

        Raises:
            LoginFailedError: Email inconnu, mot de passe faux, compte
                verrouillé ou inactif (indiscernables)
            DeliveryFailedError: Code non livré; attempt_token et
                principal_id renseignés pour un renvoi
        """
        principal = await self._credentials.find_principal_by_email(email)
        # Le hachage est effectué même pour un email inconnu
        valid = await self._policy.verify(principal.principal_id if principal else None, password)

        if principal is None:
            await self._reject(self.UNKNOWN_PRINCIPAL, "unknown_principal", ip_address, user_agent)
            raise LoginFailedError()

        principal_id = principal.principal_id
        if self._locker and self._locker.is_locked(principal_id):
            await self._reject(principal_id, "locked", ip_address, user_agent)
            raise LoginFailedError()

        if not principal.active:
            await self._reject(principal_id, "inactive", ip_address, user_agent)
            raise LoginFailedError()

        if not valid:
            await self._reject(principal_id, "bad_password", ip_address, user_agent)
            if self._locker:
                status = self._locker.record_failure(principal_id)
                if status.locked:
                    await self._emit(
                        AuditEventType.ACCOUNT_LOCKED,
                        principal_id,
                        "lock",
                        AuditOutcome.FAILURE,
                        {"failures": status.failure_count},
                        ip_address,
                        user_agent,
                    )
            raise LoginFailedError()

        if self._locker:
            self._locker.record_success(principal_id)

        now = self._clock()
        attempt = LoginAttempt(
            attempt_token=self._crypto.generate_token(self.ATTEMPT_TOKEN_BYTES),
            principal_id=principal_id,
            role=principal.role,
            state=LoginState.CREDENTIALS_VALID,
            created_at=now,
            expires_at=now + timedelta(seconds=self._settings.login_attempt_ttl_seconds),
            destination=principal.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._emit(
            AuditEventType.CREDENTIALS_ACCEPTED,
            principal_id,
            _transition(LoginState.AWAITING_CREDENTIALS, LoginState.CREDENTIALS_VALID),
            AuditOutcome.SUCCESS,
            {},
            ip_address,
            user_agent,
        )

        if self.otp_required(principal):
            return await self._await_otp(attempt)
        return await self._after_second_factor(attempt)

    # ── Second facteur ────────────────────────────────────────────────────

    async def _await_otp(self, attempt: LoginAttempt) -> LoginStep:
        source = attempt.state
        attempt.state = LoginState.AWAITING_OTP
        try:
            issued = await self._otp.issue(attempt.principal_id, attempt.destination)
        except DeliveryFailedError as e:
            # Le challenge reste valide: le parcours attend un renvoi
            attempt.challenge_id = e.challenge_id
            await self._attempts.put(attempt)
            e.attempt_token = attempt.attempt_token
            e.principal_id = attempt.principal_id
            raise

        attempt.challenge_id = issued.challenge_id
        await self._attempts.put(attempt)
        await self._emit(
            AuditEventType.OTP_REQUIRED,
            attempt.principal_id,
            _transition(source, LoginState.AWAITING_OTP),
            AuditOutcome.SUCCESS,
            {"challenge_id": issued.challenge_id},
            attempt.ip_address,
            attempt.user_agent,
        )
        return LoginStep(
            state=LoginState.AWAITING_OTP,
            principal_id=attempt.principal_id,
            attempt_token=attempt.attempt_token,
            challenge_expires_at=issued.expires_at,
        )

    async def submit_otp(self, attempt_token: str, code: str, principal_id: Optional[str] = None) -> LoginStep:
        """
        Vérifie le code du parcours.

        Les erreurs OTP sont spécifiques et laissent le parcours en
        AwaitingOTP (nouvel essai ou renvoi possibles).

        Raises:
            LoginFailedError: Parcours inconnu, expiré, ou principal différent
            NoActiveChallengeError, OTPExpiredError, OTPAttemptsExceededError,
            OTPMismatchError, OTPConsumedError
        """
        await self._require_known(attempt_token)
        async with self._attempts.lock(attempt_token):
            attempt = await self._load(attempt_token, LoginState.AWAITING_OTP)
            if principal_id is not None and principal_id != attempt.principal_id:
                raise LoginFailedError()

            await self._otp.verify(attempt.principal_id, code, attempt.challenge_id)

            attempt.state = LoginState.OTP_VERIFIED
            await self._emit(
                AuditEventType.OTP_VERIFIED,
                attempt.principal_id,
                _transition(LoginState.AWAITING_OTP, LoginState.OTP_VERIFIED),
                AuditOutcome.SUCCESS,
                {},
                attempt.ip_address,
                attempt.user_agent,
            )
            return await self._after_second_factor(attempt)

    async def resend_otp(self, attempt_token: str) -> LoginStep:
        """
        Émet un nouveau code; le précédent est remplacé.

        Raises:
            LoginFailedError: Parcours inconnu ou hors AwaitingOTP
            DeliveryFailedError: Nouveau code non livré
        """
        await self._require_known(attempt_token)
        async with self._attempts.lock(attempt_token):
            attempt = await self._load(attempt_token, LoginState.AWAITING_OTP)
            return await self._await_otp(attempt)

    # ── Changement de mot de passe imposé ─────────────────────────────────

    async def _after_second_factor(self, attempt: LoginAttempt) -> LoginStep:
        if await self._policy.requires_rotation(attempt.principal_id):
            source = attempt.state
            attempt.state = LoginState.AWAITING_PASSWORD_CHANGE
            await self._attempts.put(attempt)
            await self._emit(
                AuditEventType.PASSWORD_CHANGE_REQUIRED,
                attempt.principal_id,
                _transition(source, LoginState.AWAITING_PASSWORD_CHANGE),
                AuditOutcome.SUCCESS,
                {},
                attempt.ip_address,
                attempt.user_agent,
            )
            return LoginStep(
                state=LoginState.AWAITING_PASSWORD_CHANGE,
                principal_id=attempt.principal_id,
                attempt_token=attempt.attempt_token,
            )
        return await self._authenticate(attempt)

    async def submit_password_change(self, attempt_token: str, current_password: str, new_password: str) -> LoginStep:
        """
        Rotation imposée puis émission de la session.

        Raises:
            LoginFailedError: Parcours inconnu ou hors AwaitingPasswordChange
            InvalidCredentialsError, PasswordPolicyViolationError,
            PasswordReuseError: le parcours reste en AwaitingPasswordChange
        """
        await self._require_known(attempt_token)
        async with self._attempts.lock(attempt_token):
            attempt = await self._load(attempt_token, LoginState.AWAITING_PASSWORD_CHANGE)
            await self._policy.rotate(attempt.principal_id, current_password, new_password)
            return await self._authenticate(attempt)

    # ── Fin de parcours ───────────────────────────────────────────────────

    async def _authenticate(self, attempt: LoginAttempt) -> LoginStep:
        issued = await self._sessions.issue(
            attempt.principal_id,
            attempt.role,
            ip_address=attempt.ip_address,
            user_agent=attempt.user_agent,
        )
        await self._attempts.delete(attempt.attempt_token)
        await self._emit(
            AuditEventType.LOGIN_COMPLETED,
            attempt.principal_id,
            _transition(attempt.state, LoginState.AUTHENTICATED),
            AuditOutcome.SUCCESS,
            {"session_id": issued.session.session_id},
            attempt.ip_address,
            attempt.user_agent,
        )
        if self._logger:
            self._logger.info("login completed", principal_id=attempt.principal_id, role=attempt.role.value)
        return LoginStep(state=LoginState.AUTHENTICATED, principal_id=attempt.principal_id, session=issued)

    async def abandon(self, attempt_token: str) -> bool:
        """
        Abandonne un parcours. Un challenge OTP déjà émis expire seul.

        Returns:
            True si un parcours a été supprimé
        """
        attempt = await self._attempts.get(attempt_token) if attempt_token else None
        if attempt is None:
            return False
        await self._attempts.delete(attempt_token)
        await self._emit(
            AuditEventType.LOGIN_ABANDONED,
            attempt.principal_id,
            _transition(attempt.state, LoginState.AWAITING_CREDENTIALS),
            AuditOutcome.SUCCESS,
            {},
            attempt.ip_address,
            attempt.user_agent,
        )
        return True

    async def pending_state(self, attempt_token: Optional[str]) -> Optional[LoginState]:
        """État d'un parcours en cours et non expiré, None sinon."""
        attempt = await self._attempts.get(attempt_token) if attempt_token else None
        if attempt is None or self._clock() > attempt.expires_at:
            return None
        return attempt.state

    async def cleanup_expired(self) -> int:
        return await self._attempts.delete_expired(self._clock())

    # ── Utilitaires ───────────────────────────────────────────────────────

    async def _require_known(self, attempt_token: str) -> None:
        # Aucun verrou n'est créé pour un jeton inconnu
        if not attempt_token or await self._attempts.get(attempt_token) is None:
            raise LoginFailedError()

    async def _load(self, attempt_token: str, expected: LoginState) -> LoginAttempt:
        attempt = await self._attempts.get(attempt_token) if attempt_token else None
        if attempt is None:
            raise LoginFailedError()
        if self._clock() > attempt.expires_at:
            await self._attempts.delete(attempt_token)
            raise LoginFailedError()
        if attempt.state is not expected:
            raise LoginFailedError()
        return attempt

    async def _reject(self, principal_id: str, reason: str, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        if self._logger:
            self._logger.info("login rejected", principal_id=principal_id, reason=reason)
        await self._emit(
            AuditEventType.CREDENTIALS_REJECTED,
            principal_id,
            _transition(LoginState.AWAITING_CREDENTIALS, LoginState.AWAITING_CREDENTIALS),
            AuditOutcome.FAILURE,
            {"reason": reason},
            ip_address,
            user_agent,
        )

    async def _emit(self, event_type, principal_id, transition, outcome, metadata, ip_address=None, user_agent=None) -> None:
        if self._audit:
            await self._audit.emit_event(
                event_type,
                principal_id,
                transition,
                outcome,
                metadata,
                ip_address=ip_address,
                user_agent=user_agent,
            )
