"""
Authentification et autorisation

- Matrice de permissions par rôle
- Politique de mot de passe et rotation
- Codes OTP à usage unique
- Sessions opaques révocables
- Parcours de connexion (machine d'états)
"""

from .interfaces import (
    Role,
    ROLE_DISPLAY_NAMES,
    Resource,
    Permission,
    PasswordStrength,
    LoginState,
    Principal,
    Credential,
    OTPChallenge,
    Session,
    IssuedSession,
    SessionPrincipal,
    PasswordValidation,
    RotationResult,
    IssuedChallenge,
    AccountLockStatus,
    LoginAttempt,
    ICredentialStore,
    IChallengeStore,
    ISessionStore,
    ILoginAttemptStore,
    INotifier,
    IPermissionMatrix,
    ICredentialPolicy,
    IOTPChallengeManager,
    ISessionManager,
    IAccountLocker,
)
from .errors import (
    AuthError,
    LoginFailedError,
    NoActiveChallengeError,
    OTPExpiredError,
    OTPMismatchError,
    OTPAttemptsExceededError,
    OTPConsumedError,
    DeliveryFailedError,
    SessionNotFoundError,
    SessionExpiredError,
    SessionRevokedError,
    InvalidCredentialsError,
    PasswordPolicyViolationError,
    PasswordReuseError,
    PermissionDeniedError,
    PermissionMatrixError,
)
from .permission_matrix import PermissionMatrix, DEFAULT_MATRIX
from .credential_policy import CredentialPolicy
from .otp_manager import OTPChallengeManager
from .session_manager import SessionManager
from .account_locker import AccountLocker
from .state_machine import AuthStateMachine, LoginStep
from .memory_store import (
    InMemoryCredentialStore,
    InMemoryChallengeStore,
    InMemorySessionStore,
    InMemoryLoginAttemptStore,
)

__all__ = [
    # Enums
    "Role",
    "ROLE_DISPLAY_NAMES",
    "Resource",
    "Permission",
    "PasswordStrength",
    "LoginState",
    # Data classes
    "Principal",
    "Credential",
    "OTPChallenge",
    "Session",
    "IssuedSession",
    "SessionPrincipal",
    "PasswordValidation",
    "RotationResult",
    "IssuedChallenge",
    "AccountLockStatus",
    "LoginAttempt",
    "LoginStep",
    # Interfaces
    "ICredentialStore",
    "IChallengeStore",
    "ISessionStore",
    "ILoginAttemptStore",
    "INotifier",
    "IPermissionMatrix",
    "ICredentialPolicy",
    "IOTPChallengeManager",
    "ISessionManager",
    "IAccountLocker",
    # Implementations
    "PermissionMatrix",
    "DEFAULT_MATRIX",
    "CredentialPolicy",
    "OTPChallengeManager",
    "SessionManager",
    "AccountLocker",
    "AuthStateMachine",
    "InMemoryCredentialStore",
    "InMemoryChallengeStore",
    "InMemorySessionStore",
    "InMemoryLoginAttemptStore",
    # Exceptions
    "AuthError",
    "LoginFailedError",
    "NoActiveChallengeError",
    "OTPExpiredError",
    "OTPMismatchError",
    "OTPAttemptsExceededError",
    "OTPConsumedError",
    "DeliveryFailedError",
    "SessionNotFoundError",
    "SessionExpiredError",
    "SessionRevokedError",
    "InvalidCredentialsError",
    "PasswordPolicyViolationError",
    "PasswordReuseError",
    "PermissionDeniedError",
    "PermissionMatrixError",
]
