"""
Audit - Audit Emitter Implementation

Émetteur d'événements d'audit: métadonnées masquées, hash SHA-384,
signature ECDSA-P384, écriture dans le log structuré.
"""

import base64
import json
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from .interfaces import AuditEvent, AuditEventType, AuditOutcome, IAuditEmitter
from ..core.interfaces import ICryptoProvider
from ..logging.interfaces import ISensitiveMasker, IStructuredLogger
from ..logging.sensitive_masker import SensitiveMasker


AUDIT_KEY_ID = "audit_key"


class AuditEmitterError(Exception):
    """Erreur émission événement audit."""

    pass


class AuditEmitter(IAuditEmitter):
    """
    Émetteur d'événements d'audit signés.

    Example:
        emitter = AuditEmitter(crypto_provider, logger)
        event = await emitter.emit_event(
            AuditEventType.SESSION_ISSUED,
            "user-123",
            "OTPVerified->Authenticated",
        )
    """

    def __init__(
        self,
        crypto_provider: ICryptoProvider,
        logger: Optional[IStructuredLogger] = None,
        masker: Optional[ISensitiveMasker] = None,
        max_events: int = 10000,
    ):
        """
        Args:
            crypto_provider: Fournisseur cryptographique pour signature
            logger: Log structuré de destination (optionnel)
            masker: Masker des métadonnées
            max_events: Taille du journal conservé en mémoire
        """
        self.crypto_provider = crypto_provider
        self._logger = logger
        self._masker = masker or SensitiveMasker()
        self._events: Deque[AuditEvent] = deque(maxlen=max_events)

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

        Raises:
            AuditEmitterError: Champs obligatoires manquants ou signature impossible
        """
        if not principal_id or not transition:
            raise AuditEmitterError("principal_id et transition sont obligatoires")

        if not isinstance(event_type, AuditEventType):
            raise AuditEmitterError(f"Type événement invalide: {event_type}")

        clean_metadata = self._masker.mask(self._sanitize_metadata(metadata or {}))

        preliminary_event = AuditEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(timezone.utc),
            principal_id=principal_id,
            transition=transition,
            outcome=outcome,
            metadata=clean_metadata,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        try:
            event_hash = self.compute_event_hash(preliminary_event)
            signature = self._sign_event_data(preliminary_event)
        except (TypeError, ValueError) as e:
            raise AuditEmitterError(f"Erreur création événement audit: {e}")

        signed_event = AuditEvent(
            event_id=preliminary_event.event_id,
            event_type=event_type,
            timestamp=preliminary_event.timestamp,
            principal_id=principal_id,
            transition=transition,
            outcome=outcome,
            metadata=clean_metadata,
            ip_address=ip_address,
            user_agent=user_agent,
            signature=signature,
            hash_value=event_hash,
        )

        self._events.append(signed_event)
        if self._logger:
            self._logger.info(
                f"audit {event_type.value}",
                event_id=signed_event.event_id,
                principal_id=principal_id,
                transition=transition,
                outcome=outcome.value,
                metadata=clean_metadata,
            )

        return signed_event

    def verify_event_signature(self, event: AuditEvent) -> bool:
        """Vérifie la signature d'un événement."""
        if not event.signature:
            return False

        try:
            signature_bytes = base64.b64decode(event.signature)
        except ValueError:
            return False

        event_data = self._canonical_event_data(event)
        return self.crypto_provider.verify_signature(event_data.encode("utf-8"), signature_bytes, AUDIT_KEY_ID)

    def compute_event_hash(self, event: AuditEvent) -> str:
        """Hash SHA-384 de la représentation canonique."""
        return self.crypto_provider.hash(self._canonical_event_data(event).encode("utf-8"))

    def get_events(
        self,
        principal_id: Optional[str] = None,
        event_types: Optional[List[AuditEventType]] = None,
    ) -> List[AuditEvent]:
        events = list(self._events)
        if principal_id is not None:
            events = [e for e in events if e.principal_id == principal_id]
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        return events

    def _sign_event_data(self, event: AuditEvent) -> str:
        """Signature ECDSA-P384 encodée base64."""
        event_data = self._canonical_event_data(event)
        signature_bytes = self.crypto_provider.sign(event_data.encode("utf-8"), AUDIT_KEY_ID)
        return base64.b64encode(signature_bytes).decode("utf-8")

    def _canonical_event_data(self, event: AuditEvent) -> str:
        """JSON canonique (clés triées), sans signature ni hash."""
        data = {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "timestamp": event.timestamp.isoformat(),
            "principal_id": event.principal_id,
            "transition": event.transition,
            "outcome": event.outcome.value,
            "metadata": event.metadata,
            "ip_address": event.ip_address,
            "user_agent": event.user_agent,
        }
        return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)

    def _sanitize_metadata(self, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Ne garde que des scalaires, listes courtes et dicts peu profonds."""
        clean_metadata: Dict[str, Any] = {}

        for key, value in metadata.items():
            if not isinstance(key, str) or len(key) > 100:
                continue

            if isinstance(value, (str, int, float, bool)) or value is None:
                if isinstance(value, str) and len(value) > 1000:
                    value = value[:1000]
                clean_metadata[key] = value
            elif isinstance(value, dict):
                clean_metadata[key] = self._sanitize_metadata(value) if len(value) <= 50 else {}
            elif isinstance(value, (list, tuple)):
                clean_metadata[key] = [v for v in list(value)[:50] if isinstance(v, (str, int, float, bool))]

        return clean_metadata
