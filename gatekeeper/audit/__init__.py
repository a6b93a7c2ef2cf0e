"""
Audit des transitions d'authentification.
"""

from .interfaces import IAuditEmitter, AuditEvent, AuditEventType, AuditOutcome
from .audit_emitter import AuditEmitter, AuditEmitterError, AUDIT_KEY_ID

__all__ = [
    # Interfaces
    "IAuditEmitter",
    # Data classes
    "AuditEvent",
    "AuditEventType",
    "AuditOutcome",
    # Implementations
    "AuditEmitter",
    "AUDIT_KEY_ID",
    # Exceptions
    "AuditEmitterError",
]
