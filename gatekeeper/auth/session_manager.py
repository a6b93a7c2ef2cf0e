"""
Auth - Session Manager Implementation

Jetons de session opaques, validés côté serveur à chaque requête.

Le jeton remis au client n'est jamais stocké: la session est indexée par
son condensé HMAC. Une session révoquée ne redevient jamais valide.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from .errors import SessionExpiredError, SessionNotFoundError, SessionRevokedError
from .interfaces import (
    ISessionManager,
    ISessionStore,
    IssuedSession,
    Role,
    Session,
    SessionPrincipal,
)
from ..audit.interfaces import AuditEventType, AuditOutcome, IAuditEmitter
from ..core.interfaces import ICryptoProvider, SessionSettings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager(ISessionManager):
    """
    Gestionnaire de sessions.

    Example:
        sessions = SessionManager(store, crypto)
        issued = await sessions.issue("user-1", Role.ADMIN)
        principal = await sessions.validate(issued.token)
    """

    TOKEN_BYTES: int = 48
    DIGEST_CONTEXT: str = "session"

    def __init__(
        self,
        store: ISessionStore,
        crypto_provider: ICryptoProvider,
        settings: Optional[SessionSettings] = None,
        audit_emitter: Optional[IAuditEmitter] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._crypto = crypto_provider
        self._settings = settings or SessionSettings()
        self._audit = audit_emitter
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.ttl_seconds)

    def session_id_for(self, token: str) -> str:
        """Identifiant de session dérivé du jeton."""
        return self._crypto.keyed_digest(token or "", context=self.DIGEST_CONTEXT)

    async def issue(
        self,
        principal_id: str,
        role: Role,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssuedSession:
        """
        Crée une session pour un principal authentifié.

        Le rôle est figé dans la session: un changement de rôle ultérieur
        n'affecte que les sessions émises après lui.
        """
        if not principal_id:
            raise ValueError("principal_id est obligatoire")

        now = self._clock()
        token = self._crypto.generate_token(self.TOKEN_BYTES)
        session = Session(
            session_id=self.session_id_for(token),
            principal_id=principal_id,
            role=role,
            issued_at=now,
            expires_at=now + self.ttl,
            last_activity_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._store.insert(session)

        if self._audit:
            await self._audit.emit_event(
                AuditEventType.SESSION_ISSUED,
                principal_id,
                "issue",
                AuditOutcome.SUCCESS,
                {"session_id": session.session_id, "role": role.value},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        return IssuedSession(token=token, session=session)

    async def validate(self, token: str) -> SessionPrincipal:
        """
        Valide un jeton.

        Révocation puis expiration: une session révoquée et expirée est
        rapportée comme révoquée.

        Raises:
            SessionNotFoundError: Jeton inconnu
            SessionRevokedError: Session révoquée
            SessionExpiredError: Session expirée
        """
        if not token:
            raise SessionNotFoundError()

        session = await self._store.get(self.session_id_for(token))
        if session is None:
            raise SessionNotFoundError()
        if session.revoked:
            raise SessionRevokedError()

        now = self._clock()
        if now > session.expires_at:
            raise SessionExpiredError()

        expires_at = session.expires_at
        if self._settings.sliding_expiration:
            renewed = now + self.ttl
            if await self._store.extend(session.session_id, renewed, now):
                expires_at = max(expires_at, renewed)

        return SessionPrincipal(
            principal_id=session.principal_id,
            role=session.role,
            session_id=session.session_id,
            expires_at=expires_at,
        )

    async def revoke(self, token: str, reason: str = "logout") -> bool:
        """
        Révoque la session d'un jeton. Idempotent.

        Returns:
            True si la session vient d'être révoquée
        """
        if not token:
            return False
        return await self.revoke_session(self.session_id_for(token), reason)

    async def revoke_session(self, session_id: str, reason: str = "logout") -> bool:
        session = await self._store.get(session_id)
        if session is None:
            return False

        revoked = await self._store.mark_revoked(session_id, self._clock(), reason)
        if revoked and self._audit:
            await self._audit.emit_event(
                AuditEventType.SESSION_REVOKED,
                session.principal_id,
                "revoke",
                AuditOutcome.SUCCESS,
                {"session_id": session_id, "reason": reason},
            )
        return revoked

    async def revoke_all(
        self,
        principal_id: str,
        reason: str = "security",
        except_session_id: Optional[str] = None,
    ) -> int:
        """
        Révoque toutes les sessions actives d'un principal.

        Args:
            principal_id: Principal concerné
            reason: Motif enregistré sur chaque session
            except_session_id: Session à conserver (celle de l'appelant)

        Returns:
            Nombre de sessions révoquées
        """
        now = self._clock()
        count = 0
        for session in await self._store.list_for_principal(principal_id):
            if session.session_id == except_session_id or session.revoked:
                continue
            if await self._store.mark_revoked(session.session_id, now, reason):
                count += 1

        if self._audit:
            await self._audit.emit_event(
                AuditEventType.SESSIONS_REVOKED_ALL,
                principal_id,
                "revoke_all",
                AuditOutcome.SUCCESS,
                {"reason": reason, "count": count},
            )
        return count

    async def list_sessions(self, principal_id: str) -> List[Session]:
        """Sessions actives, la plus récente d'abord."""
        now = self._clock()
        sessions = [
            s for s in await self._store.list_for_principal(principal_id)
            if not s.revoked and now <= s.expires_at
        ]
        return sorted(sessions, key=lambda s: s.issued_at, reverse=True)

    async def cleanup_expired(self) -> int:
        return await self._store.delete_expired(self._clock())
