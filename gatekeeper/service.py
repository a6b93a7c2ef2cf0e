"""
Assemblage des composants du noyau d'authentification.

Un seul point de construction: les composants partagent la même horloge,
le même fournisseur cryptographique et le même journal d'audit.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .audit import AuditEmitter
from .auth import (
    AccountLocker,
    AuthStateMachine,
    CredentialPolicy,
    ICredentialStore,
    INotifier,
    InMemoryChallengeStore,
    InMemoryCredentialStore,
    InMemoryLoginAttemptStore,
    InMemorySessionStore,
    OTPChallengeManager,
    PermissionMatrix,
    SessionManager,
)
from .core import AuthSettings, ConfigLoader, CryptoProvider, ICryptoProvider
from .logging import StructuredLogger
from .notify import OutboxNotifier, RetryingNotifier


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuthComponents:
    """Composants câblés, partagés par l'application HTTP."""

    settings: AuthSettings
    crypto: ICryptoProvider
    logger: StructuredLogger
    audit: AuditEmitter
    permissions: PermissionMatrix
    credential_store: ICredentialStore
    credentials: CredentialPolicy
    otp: OTPChallengeManager
    sessions: SessionManager
    locker: AccountLocker
    login: AuthStateMachine
    notifier: INotifier


def build_components(
    settings: Optional[AuthSettings] = None,
    credential_store: Optional[ICredentialStore] = None,
    notifier: Optional[INotifier] = None,
    crypto_provider: Optional[ICryptoProvider] = None,
    logger: Optional[StructuredLogger] = None,
    config_loader: Optional[ConfigLoader] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> AuthComponents:
    """
    Construit l'ensemble des composants.

    Args:
        settings: Paramètres (défauts si absent)
        credential_store: Principaux et identifiants (mémoire si absent)
        notifier: Livraison des codes, enveloppé de retries
            (boîte d'envoi en mémoire si absent)
        crypto_provider: Primitives cryptographiques
        logger: Logger racine
        config_loader: Lecture de la matrice de permissions alternative
        clock: Horloge UTC commune

    Raises:
        PermissionMatrixError: Matrice incomplète ou invalide
        ConfigIntegrityError: Fichier de matrice illisible
    """
    settings = settings or AuthSettings()
    crypto = crypto_provider or CryptoProvider()
    logger = logger or StructuredLogger("gatekeeper")
    audit = AuditEmitter(crypto, logger=logger.child("audit"))

    if settings.permission_matrix_path:
        loader = config_loader or ConfigLoader()
        permissions = PermissionMatrix(loader.load_permission_matrix(settings.permission_matrix_path))
    else:
        permissions = PermissionMatrix()

    credential_store = credential_store or InMemoryCredentialStore()
    notifier = notifier or OutboxNotifier(logger=logger.child("outbox"))

    sessions = SessionManager(
        InMemorySessionStore(),
        crypto,
        settings=settings.session,
        audit_emitter=audit,
        clock=clock,
    )
    credentials = CredentialPolicy(
        credential_store,
        crypto,
        settings=settings.password,
        session_manager=sessions,
        audit_emitter=audit,
        revoke_sessions_on_rotation=settings.revoke_sessions_on_rotation,
        clock=clock,
    )
    otp = OTPChallengeManager(
        InMemoryChallengeStore(),
        RetryingNotifier(notifier, settings.delivery, logger=logger.child("notify")),
        crypto,
        settings=settings.otp,
        audit_emitter=audit,
        logger=logger.child("otp"),
        clock=clock,
    )
    locker = AccountLocker(settings.lockout, clock=clock)
    login = AuthStateMachine(
        credential_store,
        InMemoryLoginAttemptStore(),
        credentials,
        otp,
        sessions,
        crypto,
        account_locker=locker,
        settings=settings,
        audit_emitter=audit,
        logger=logger.child("login"),
        clock=clock,
    )

    logger.info(
        "auth components ready",
        second_factor_roles=settings.otp_required_roles,
        session_ttl=settings.session.ttl_seconds,
    )
    return AuthComponents(
        settings=settings,
        crypto=crypto,
        logger=logger,
        audit=audit,
        permissions=permissions,
        credential_store=credential_store,
        credentials=credentials,
        otp=otp,
        sessions=sessions,
        locker=locker,
        login=login,
        notifier=notifier,
    )
