"""
Estate Gatekeeper - Pytest Configuration
Fixtures partagées pour tous les tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from gatekeeper.audit import AuditEmitter
from gatekeeper.auth import (
    AuthStateMachine,
    AccountLocker,
    CredentialPolicy,
    InMemoryChallengeStore,
    InMemoryCredentialStore,
    InMemoryLoginAttemptStore,
    InMemorySessionStore,
    OTPChallengeManager,
    Principal,
    Role,
    SessionManager,
)
from gatekeeper.core import AuthSettings, CryptoProvider
from gatekeeper.logging import StructuredLogger
from gatekeeper.notify import OutboxNotifier


ADMIN_PASSWORD = "Admin#2024pass"
EDITOR_PASSWORD = "Editor#2024pass"
NEW_PASSWORD = "Fresh#2025pass"


class FrozenClock:
    """Horloge contrôlable pour les tests d'expiration."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def crypto() -> CryptoProvider:
    """CryptoProvider avec clé HMAC fixe."""
    return CryptoProvider(secret_key=b"k" * 32)


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger en mémoire seule."""
    return StructuredLogger("gatekeeper.tests", output_handler=None)


@pytest.fixture
def audit(crypto, logger) -> AuditEmitter:
    return AuditEmitter(crypto, logger=logger.child("audit"))


@pytest.fixture
def outbox() -> OutboxNotifier:
    return OutboxNotifier()


@pytest.fixture
def settings() -> AuthSettings:
    """Second facteur pour l'admin uniquement."""
    return AuthSettings(otp_required_roles=["admin"])


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore(
        [
            Principal("u-admin", "admin@estate.test", Role.ADMIN),
            Principal("u-editor", "editor@estate.test", Role.DATA_EDITOR),
            Principal("u-new", "new@estate.test", Role.SALES_SPECIALIST),
        ]
    )


@pytest.fixture
def sessions(crypto, settings, audit, clock) -> SessionManager:
    return SessionManager(InMemorySessionStore(), crypto, settings=settings.session, audit_emitter=audit, clock=clock)


@pytest.fixture
def policy(credential_store, crypto, settings, sessions, audit, clock) -> CredentialPolicy:
    return CredentialPolicy(
        credential_store,
        crypto,
        settings=settings.password,
        session_manager=sessions,
        audit_emitter=audit,
        clock=clock,
    )


@pytest.fixture
def otp(crypto, outbox, settings, audit, logger, clock) -> OTPChallengeManager:
    return OTPChallengeManager(
        InMemoryChallengeStore(),
        outbox,
        crypto,
        settings=settings.otp,
        audit_emitter=audit,
        logger=logger.child("otp"),
        clock=clock,
    )


@pytest_asyncio.fixture
async def provisioned(policy):
    """Identifiants initiaux: u-new doit changer son mot de passe."""
    await policy.provision("u-admin", ADMIN_PASSWORD, must_change_password=False)
    await policy.provision("u-editor", EDITOR_PASSWORD, must_change_password=False)
    await policy.provision("u-new", ADMIN_PASSWORD, must_change_password=True)
    return policy


@pytest.fixture
def machine(credential_store, policy, otp, sessions, crypto, settings, audit, logger, clock) -> AuthStateMachine:
    return AuthStateMachine(
        credential_store,
        InMemoryLoginAttemptStore(),
        policy,
        otp,
        sessions,
        crypto,
        account_locker=AccountLocker(settings.lockout, clock=clock),
        settings=settings,
        audit_emitter=audit,
        logger=logger.child("login"),
        clock=clock,
    )
