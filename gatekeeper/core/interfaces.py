"""
Gatekeeper - Core Interfaces
Paramètres du noyau d'authentification et contrats du module Core.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════════
# PARAMÈTRES
# ══════════════════════════════════════════════════════════════════════════════


class PasswordSettings(BaseModel):
    """Politique de mot de passe."""

    min_length: int = Field(default=8, ge=1)


class OTPSettings(BaseModel):
    """Codes à usage unique (second facteur)."""

    length: int = Field(default=6, ge=4, le=12)
    alphabet: str = "numeric"
    ttl_seconds: int = Field(default=600, gt=0)
    max_attempts: int = Field(default=5, ge=1)

    @field_validator("alphabet")
    @classmethod
    def _check_alphabet(cls, value: str) -> str:
        if value not in ("numeric", "alphanumeric"):
            raise ValueError("alphabet doit être 'numeric' ou 'alphanumeric'")
        return value


class SessionSettings(BaseModel):
    """Sessions serveur et cookie de transport."""

    ttl_seconds: int = Field(default=86400, gt=0)
    sliding_expiration: bool = False
    cookie_name: str = "gk_session"
    cookie_secure: bool = True
    cookie_samesite: str = "strict"


class DeliverySettings(BaseModel):
    """Livraison des codes OTP par le notifier externe."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)


class LockoutSettings(BaseModel):
    """Verrouillage temporaire après échecs d'identification."""

    max_failures: int = Field(default=5, ge=1)
    duration_seconds: int = Field(default=900, gt=0)


class AuthSettings(BaseModel):
    """Configuration complète du noyau d'authentification."""

    password: PasswordSettings = Field(default_factory=PasswordSettings)
    otp: OTPSettings = Field(default_factory=OTPSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    lockout: LockoutSettings = Field(default_factory=LockoutSettings)
    # None = second facteur exigé pour tous les rôles
    otp_required_roles: Optional[list[str]] = None
    revoke_sessions_on_rotation: bool = True
    login_attempt_ttl_seconds: int = Field(default=900, gt=0)
    permission_matrix_path: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════════
# INTERFACES
# ══════════════════════════════════════════════════════════════════════════════


class IConfigLoader(ABC):
    """Charge la configuration depuis YAML et vérifie sa structure."""

    @abstractmethod
    def load(self, path: Optional[str] = None) -> AuthSettings:
        """
        Charge et valide les paramètres.

        Raises:
            ConfigIntegrityError: Fichier absent, YAML invalide ou schéma violé
        """
        pass

    @abstractmethod
    def load_permission_matrix(self, path: str) -> dict[str, dict[str, list[str]]]:
        """Charge une matrice rôle → ressource → permissions."""
        pass


class ICryptoProvider(ABC):
    """Primitives cryptographiques du noyau."""

    @abstractmethod
    def hash_password(self, password: str, salt: Optional[bytes] = None) -> tuple[str, str]:
        """
        Dérive un hash salé (scrypt).

        Returns:
            (hash hex, sel hex)
        """
        pass

    @abstractmethod
    def verify_password(self, password: str, password_hash: str, salt: str) -> bool:
        """Compare en temps constant un mot de passe à son hash."""
        pass

    @abstractmethod
    def keyed_digest(self, data: str, context: str = "") -> str:
        """HMAC-SHA256 avec la clé serveur."""
        pass

    @abstractmethod
    def generate_token(self, num_bytes: int = 32) -> str:
        """Jeton aléatoire URL-safe."""
        pass

    @abstractmethod
    def sign(self, data: bytes, key_id: str) -> bytes:
        """Signe des données avec ECDSA-P384."""
        pass

    @abstractmethod
    def verify_signature(self, data: bytes, signature: bytes, key_id: str) -> bool:
        """Vérifie une signature ECDSA-P384."""
        pass

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """Hash SHA-384 hexadécimal (96 caractères)."""
        pass

    @abstractmethod
    def constant_time_equals(self, left: Any, right: Any) -> bool:
        """Comparaison en temps constant."""
        pass
