"""
Auth - Interfaces

Contrats de l'autorisation et du cycle de vie des identifiants/sessions.
Toute implémentation (stockage en mémoire, base de données) DOIT respecter
ces interfaces.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncContextManager, FrozenSet, List, Optional, Set, Union


# ══════════════════════════════════════════════════════════════════════════════
# ÉNUMÉRATIONS
# ══════════════════════════════════════════════════════════════════════════════


class Role(Enum):
    """Rôle attribué à un principal, figé dans la session à l'émission."""

    ADMIN = "admin"
    DIRECTOR = "director"
    DATA_EDITOR = "dataEditor"
    PROPERTY_SPECIALIST = "propertySpecialist"
    SALES_SPECIALIST = "salesSpecialist"


ROLE_DISPLAY_NAMES = {
    Role.ADMIN: "Administrator",
    Role.DIRECTOR: "Director",
    Role.DATA_EDITOR: "Data Editor",
    Role.PROPERTY_SPECIALIST: "Property Specialist",
    Role.SALES_SPECIALIST: "Sales Specialist",
}


class Resource(Enum):
    """Capacités protégées."""

    USER_MANAGEMENT = "userManagement"
    SYSTEM_SETTINGS = "systemSettings"
    API_CREDENTIALS = "apiCredentials"
    DASHBOARDS = "dashboards"
    CRM_DASHBOARD = "crmDashboard"
    PROPERTIES = "properties"
    LEADS = "leads"
    BOOKINGS = "bookings"
    CONTENT = "content"
    TEAM_MEMBERS = "teamMembers"
    SUCCESS_STORIES = "successStories"


class Permission(Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class PasswordStrength(Enum):
    """Indication de robustesse (affichage uniquement, jamais bloquante)."""

    WEAK = "Weak"
    MEDIUM = "Medium"
    STRONG = "Strong"


class LoginState(Enum):
    """États du parcours de connexion."""

    AWAITING_CREDENTIALS = "AwaitingCredentials"
    CREDENTIALS_VALID = "CredentialsValid"
    AWAITING_OTP = "AwaitingOTP"
    OTP_VERIFIED = "OTPVerified"
    AWAITING_PASSWORD_CHANGE = "AwaitingPasswordChange"
    AUTHENTICATED = "Authenticated"


RoleLike = Union[Role, str]
ResourceLike = Union[Resource, str]
PermissionLike = Union[Permission, str]


# ══════════════════════════════════════════════════════════════════════════════
# DONNÉES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class Principal:
    """
    Compte authentifiable.

    Attributes:
        principal_id: Identifiant stable
        email: Adresse de connexion (et de livraison OTP)
        role: Rôle attribué (modifié uniquement par administration)
        active: False si compte désactivé
        otp_required: Force/désactive le second facteur (None = politique du rôle)
    """

    principal_id: str
    email: str
    role: Role
    active: bool = True
    otp_required: Optional[bool] = None


@dataclass
class Credential:
    """Identifiant mot de passe d'un principal."""

    principal_id: str
    password_hash: str
    salt: str
    must_change_password: bool
    updated_at: datetime


@dataclass
class OTPChallenge:
    """
    Challenge OTP; le code n'est jamais stocké en clair.

    consumed_reason: "verified", "superseded" ou "expired"
    """

    challenge_id: str
    principal_id: str
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    consumed: bool = False
    consumed_reason: Optional[str] = None

    def is_live(self, now: datetime) -> bool:
        return not self.consumed and now <= self.expires_at


@dataclass
class Session:
    """
    Session serveur.

    session_id est le condensé du jeton: le jeton lui-même n'est connu que
    du client.
    """

    session_id: str
    principal_id: str
    role: Role
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class IssuedSession:
    """Jeton remis au client et session créée."""

    token: str
    session: Session

    @property
    def expires_at(self) -> datetime:
        return self.session.expires_at


@dataclass(frozen=True)
class SessionPrincipal:
    """Résultat d'une validation de session."""

    principal_id: str
    role: Role
    session_id: str
    expires_at: datetime


@dataclass(frozen=True)
class PasswordValidation:
    valid: bool
    violations: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RotationResult:
    principal_id: str
    updated_at: datetime
    revoked_sessions: int = 0


@dataclass(frozen=True)
class IssuedChallenge:
    challenge_id: str
    principal_id: str
    expires_at: datetime


@dataclass(frozen=True)
class AccountLockStatus:
    principal_id: str
    locked: bool
    locked_until: Optional[datetime]
    failure_count: int


@dataclass
class LoginAttempt:
    """
    Parcours de connexion en cours, adressé par un jeton opaque.

    Conservé côté serveur entre les requêtes tant que le parcours n'a pas
    atteint Authenticated.
    """

    attempt_token: str
    principal_id: str
    role: Role
    state: LoginState
    created_at: datetime
    expires_at: datetime
    challenge_id: Optional[str] = None
    destination: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# STOCKAGE
# ══════════════════════════════════════════════════════════════════════════════


class ICredentialStore(ABC):
    """
    Stockage des principaux et de leurs identifiants.

    lock(principal_id) sérialise les lectures-modifications d'un même
    principal (mutex, verrou de ligne...).
    """

    @abstractmethod
    async def get_principal(self, principal_id: str) -> Optional[Principal]:
        pass

    @abstractmethod
    async def find_principal_by_email(self, email: str) -> Optional[Principal]:
        """Recherche insensible à la casse."""
        pass

    @abstractmethod
    async def get_credential(self, principal_id: str) -> Optional[Credential]:
        pass

    @abstractmethod
    async def save_credential(self, credential: Credential) -> None:
        pass

    @abstractmethod
    def lock(self, principal_id: str) -> AsyncContextManager[None]:
        pass


class IChallengeStore(ABC):
    """Stockage des challenges OTP."""

    @abstractmethod
    async def insert(self, challenge: OTPChallenge) -> None:
        pass

    @abstractmethod
    async def get(self, challenge_id: str) -> Optional[OTPChallenge]:
        pass

    @abstractmethod
    async def latest_for_principal(self, principal_id: str) -> Optional[OTPChallenge]:
        """Challenge le plus récent (vivant ou non)."""
        pass

    @abstractmethod
    async def list_for_principal(self, principal_id: str) -> List[OTPChallenge]:
        pass

    @abstractmethod
    async def save(self, challenge: OTPChallenge) -> None:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        pass

    @abstractmethod
    def lock(self, principal_id: str) -> AsyncContextManager[None]:
        pass


class ISessionStore(ABC):
    """
    Stockage des sessions.

    Toute lecture reflète l'état courant: aucun cache ne peut renvoyer une
    session non révoquée après mark_revoked.
    """

    @abstractmethod
    async def insert(self, session: Session) -> None:
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def mark_revoked(self, session_id: str, revoked_at: datetime, reason: str) -> bool:
        """
        Révoque atomiquement.

        Returns:
            True si la session passe de active à révoquée, False sinon
        """
        pass

    @abstractmethod
    async def extend(self, session_id: str, expires_at: datetime, last_activity_at: datetime) -> bool:
        """Prolonge une session non révoquée (expiration glissante)."""
        pass

    @abstractmethod
    async def list_for_principal(self, principal_id: str) -> List[Session]:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        pass


class ILoginAttemptStore(ABC):
    """Parcours de connexion en attente (OTP, changement de mot de passe)."""

    @abstractmethod
    async def put(self, attempt: LoginAttempt) -> None:
        pass

    @abstractmethod
    async def get(self, attempt_token: str) -> Optional[LoginAttempt]:
        pass

    @abstractmethod
    async def delete(self, attempt_token: str) -> bool:
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        pass

    @abstractmethod
    def lock(self, attempt_token: str) -> AsyncContextManager[None]:
        pass


# ══════════════════════════════════════════════════════════════════════════════
# COLLABORATEURS
# ══════════════════════════════════════════════════════════════════════════════


class INotifier(ABC):
    """Livraison hors bande du code OTP (email...)."""

    @abstractmethod
    async def deliver(
        self,
        principal_id: str,
        destination: Optional[str],
        code: str,
        expires_at: datetime,
    ) -> None:
        """
        Raises:
            ConnectionError, TimeoutError: Échec transitoire (retryable)
        """
        pass


# ══════════════════════════════════════════════════════════════════════════════
# COMPOSANTS
# ══════════════════════════════════════════════════════════════════════════════


class IPermissionMatrix(ABC):
    """
    Table immuable (rôle, ressource) → permissions.

    Toutes les recherches sont totales: une entrée inconnue donne False,
    jamais une exception.
    """

    @abstractmethod
    def has_permission(self, role: RoleLike, resource: ResourceLike, permission: PermissionLike) -> bool:
        pass

    @abstractmethod
    def can_access(self, role: RoleLike, resource: ResourceLike) -> bool:
        pass

    @abstractmethod
    def accessible_resources(self, role: RoleLike) -> Set[Resource]:
        pass

    @abstractmethod
    def permissions(self, role: RoleLike, resource: ResourceLike) -> FrozenSet[Permission]:
        pass


class ICredentialPolicy(ABC):
    """Politique de mot de passe et rotation."""

    @abstractmethod
    def validate(self, password: str) -> PasswordValidation:
        pass

    @abstractmethod
    def strength(self, password: str) -> PasswordStrength:
        pass

    @abstractmethod
    async def verify(self, principal_id: str, password: str) -> bool:
        """Compare en temps constant au hash stocké."""
        pass

    @abstractmethod
    async def rotate(
        self,
        principal_id: str,
        current_password: str,
        new_password: str,
        keep_session_id: Optional[str] = None,
    ) -> RotationResult:
        """
        Raises:
            InvalidCredentialsError, PasswordPolicyViolationError, PasswordReuseError
        """
        pass


class IOTPChallengeManager(ABC):
    """Émission, livraison et vérification des codes à usage unique."""

    @abstractmethod
    async def issue(self, principal_id: str, destination: Optional[str] = None) -> IssuedChallenge:
        """
        Raises:
            DeliveryFailedError: Livraison échouée (challenge conservé)
        """
        pass

    @abstractmethod
    async def verify(self, principal_id: str, code: str, challenge_id: Optional[str] = None) -> IssuedChallenge:
        """
        Raises:
            NoActiveChallengeError, OTPExpiredError, OTPAttemptsExceededError,
            OTPMismatchError, OTPConsumedError
        """
        pass


class ISessionManager(ABC):
    """Émission, validation et révocation des sessions."""

    @abstractmethod
    async def issue(self, principal_id: str, role: Role) -> IssuedSession:
        pass

    @abstractmethod
    async def validate(self, token: str) -> SessionPrincipal:
        """
        Raises:
            SessionNotFoundError, SessionRevokedError, SessionExpiredError
        """
        pass

    @abstractmethod
    async def revoke(self, token: str, reason: str = "logout") -> bool:
        """Idempotent."""
        pass

    @abstractmethod
    async def revoke_all(self, principal_id: str, reason: str = "security", except_session_id: Optional[str] = None) -> int:
        pass


class IAccountLocker(ABC):
    """Verrouillage temporaire après échecs d'identification répétés."""

    @abstractmethod
    def record_failure(self, principal_id: str) -> AccountLockStatus:
        pass

    @abstractmethod
    def record_success(self, principal_id: str) -> None:
        pass

    @abstractmethod
    def is_locked(self, principal_id: str) -> bool:
        pass
