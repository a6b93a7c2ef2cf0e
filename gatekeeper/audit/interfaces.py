"""
Audit - Interfaces

Événements d'audit du cycle de vie des identifiants et des sessions.
Un événement porte le principal, la transition et son issue; jamais le
mot de passe ni le code OTP.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AuditEventType(Enum):
    """Types d'événements d'audit."""
    # Parcours de connexion
    OTP_REQUIRED = "otp_required"
    CREDENTIALS_ACCEPTED = "credentials_accepted"
    CREDENTIALS_REJECTED = "credentials_rejected"
    ACCOUNT_LOCKED = "account_locked"
    LOGIN_ABANDONED = "login_abandoned"
    LOGIN_COMPLETED = "login_completed"

    # Second facteur
    OTP_ISSUED = "otp_issued"
    OTP_DELIVERY_FAILED = "otp_delivery_failed"
    OTP_VERIFIED = "otp_verified"
    OTP_REJECTED = "otp_rejected"

    # Identifiants
    CREDENTIAL_PROVISIONED = "credential_provisioned"
    PASSWORD_CHANGE_REQUIRED = "password_change_required"
    PASSWORD_ROTATED = "password_rotated"
    PASSWORD_ROTATION_REJECTED = "password_rotation_rejected"

    # Sessions
    SESSION_ISSUED = "session_issued"
    SESSION_REVOKED = "session_revoked"
    SESSIONS_REVOKED_ALL = "sessions_revoked_all"


class AuditOutcome(Enum):
    """Issue d'une transition."""
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class AuditEvent:
    """
    Événement d'audit signé.

    Immutable pour garantir l'intégrité après signature.
    """
    event_id: str
    event_type: AuditEventType
    timestamp: datetime
    principal_id: str
    transition: str
    outcome: AuditOutcome
    metadata: Dict[str, Any]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    signature: Optional[str] = None  # ECDSA-P384, base64
    hash_value: Optional[str] = None  # SHA-384


class IAuditEmitter(ABC):
    """
    Interface émetteur d'événements d'audit.

    Responsabilités:
        - Création et signature des événements
        - Masquage des secrets dans les métadonnées
        - Écriture dans le log structuré
    """

    @abstractmethod
    async def emit_event(
        self,
        event_type: AuditEventType,
        principal_id: str,
        transition: str,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditEvent:
        """
        Émet un événement d'audit signé.

        Args:
            event_type: Type d'événement
            principal_id: Principal concerné ("anonymous" si inconnu)
            transition: Transition effectuée (ex: "AwaitingOTP->OTPVerified")
            outcome: Succès ou échec
            metadata: Métadonnées (masquées)
            ip_address: Adresse IP source
            user_agent: User agent client

        Raises:
            AuditEmitterError: Erreur création/signature
        """
        pass

    @abstractmethod
    def verify_event_signature(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    def compute_event_hash(self, event: AuditEvent) -> str:
        pass

    @abstractmethod
    def get_events(
        self,
        principal_id: Optional[str] = None,
        event_types: Optional[List[AuditEventType]] = None,
    ) -> List[AuditEvent]:
        """Événements conservés, filtrés."""
        pass
