"""
Auth - Stockage en mémoire

Implémentations mono-processus des stores. Les lectures renvoient des
copies: un appelant ne peut pas modifier l'état partagé sans passer par
save/mark_revoked.

Note:
    Stockage en mémoire pour un processus unique. Un déploiement multi-
    processus fournit ses propres stores (verrous de ligne en base).
"""

import asyncio
import dataclasses
import weakref
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from .interfaces import (
    Credential,
    IChallengeStore,
    ICredentialStore,
    ILoginAttemptStore,
    ISessionStore,
    LoginAttempt,
    OTPChallenge,
    Principal,
    Session,
)


class _KeyedLocks:
    """
    Un asyncio.Lock par clé (principal ou jeton de parcours).

    Les verrous sont tenus par référence faible: une entrée disparaît dès
    que plus aucun appelant ne détient le verrou, la table ne grossit pas
    avec les clés fournies par les clients.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryCredentialStore(ICredentialStore):
    """
    Principaux et identifiants en mémoire.

    Example:
        store = InMemoryCredentialStore()
        store.add_principal(Principal("u-1", "a@b.c", Role.ADMIN))
    """

    def __init__(self, principals: Optional[Iterable[Principal]] = None) -> None:
        self._principals: Dict[str, Principal] = {}
        self._by_email: Dict[str, str] = {}
        self._credentials: Dict[str, Credential] = {}
        self._locks = _KeyedLocks()
        for principal in principals or []:
            self.add_principal(principal)

    def add_principal(self, principal: Principal) -> None:
        """Enregistre un principal (provisionnement hors noyau)."""
        self._principals[principal.principal_id] = dataclasses.replace(principal)
        self._by_email[principal.email.strip().lower()] = principal.principal_id

    def set_active(self, principal_id: str, active: bool) -> None:
        principal = self._principals.get(principal_id)
        if principal:
            principal.active = active

    async def get_principal(self, principal_id: str) -> Optional[Principal]:
        principal = self._principals.get(principal_id)
        return dataclasses.replace(principal) if principal else None

    async def find_principal_by_email(self, email: str) -> Optional[Principal]:
        if not email:
            return None
        principal_id = self._by_email.get(email.strip().lower())
        if principal_id is None:
            return None
        return await self.get_principal(principal_id)

    async def get_credential(self, principal_id: str) -> Optional[Credential]:
        credential = self._credentials.get(principal_id)
        return dataclasses.replace(credential) if credential else None

    async def save_credential(self, credential: Credential) -> None:
        self._credentials[credential.principal_id] = dataclasses.replace(credential)

    def lock(self, principal_id: str) -> asyncio.Lock:
        return self._locks.get(principal_id)


class InMemoryChallengeStore(IChallengeStore):
    """Challenges OTP en mémoire, indexés par principal."""

    def __init__(self) -> None:
        self._challenges: Dict[str, OTPChallenge] = {}
        self._by_principal: Dict[str, List[str]] = defaultdict(list)
        self._locks = _KeyedLocks()

    async def insert(self, challenge: OTPChallenge) -> None:
        self._challenges[challenge.challenge_id] = dataclasses.replace(challenge)
        self._by_principal[challenge.principal_id].append(challenge.challenge_id)

    async def get(self, challenge_id: str) -> Optional[OTPChallenge]:
        challenge = self._challenges.get(challenge_id)
        return dataclasses.replace(challenge) if challenge else None

    async def latest_for_principal(self, principal_id: str) -> Optional[OTPChallenge]:
        ids = self._by_principal.get(principal_id)
        if not ids:
            return None
        return await self.get(ids[-1])

    async def list_for_principal(self, principal_id: str) -> List[OTPChallenge]:
        return [dataclasses.replace(self._challenges[cid]) for cid in self._by_principal.get(principal_id, [])]

    async def save(self, challenge: OTPChallenge) -> None:
        if challenge.challenge_id not in self._challenges:
            raise KeyError(challenge.challenge_id)
        self._challenges[challenge.challenge_id] = dataclasses.replace(challenge)

    async def delete_expired(self, now: datetime) -> int:
        expired = [cid for cid, ch in self._challenges.items() if ch.expires_at < now]
        for cid in expired:
            challenge = self._challenges.pop(cid)
            ids = self._by_principal.get(challenge.principal_id, [])
            if cid in ids:
                ids.remove(cid)
        return len(expired)

    def lock(self, principal_id: str) -> asyncio.Lock:
        return self._locks.get(principal_id)


class InMemorySessionStore(ISessionStore):
    """
    Sessions en mémoire.

    mark_revoked et extend ne contiennent aucun point de suspension: ils
    sont atomiques vis-à-vis des autres tâches de la boucle.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._by_principal: Dict[str, Set[str]] = defaultdict(set)

    async def insert(self, session: Session) -> None:
        self._sessions[session.session_id] = dataclasses.replace(session)
        self._by_principal[session.principal_id].add(session.session_id)

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return dataclasses.replace(session) if session else None

    async def mark_revoked(self, session_id: str, revoked_at: datetime, reason: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.revoked:
            return False
        session.revoked = True
        session.revoked_at = revoked_at
        session.revoked_reason = reason
        return True

    async def extend(self, session_id: str, expires_at: datetime, last_activity_at: datetime) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.revoked:
            return False
        session.expires_at = max(session.expires_at, expires_at)
        session.last_activity_at = last_activity_at
        return True

    async def list_for_principal(self, principal_id: str) -> List[Session]:
        return [dataclasses.replace(self._sessions[sid]) for sid in self._by_principal.get(principal_id, set())]

    async def delete_expired(self, now: datetime) -> int:
        expired = [sid for sid, s in self._sessions.items() if s.expires_at < now]
        for sid in expired:
            session = self._sessions.pop(sid)
            self._by_principal.get(session.principal_id, set()).discard(sid)
        return len(expired)


class InMemoryLoginAttemptStore(ILoginAttemptStore):
    """Parcours de connexion en mémoire."""

    def __init__(self) -> None:
        self._attempts: Dict[str, LoginAttempt] = {}
        self._locks = _KeyedLocks()

    async def put(self, attempt: LoginAttempt) -> None:
        self._attempts[attempt.attempt_token] = dataclasses.replace(attempt)

    async def get(self, attempt_token: str) -> Optional[LoginAttempt]:
        attempt = self._attempts.get(attempt_token)
        return dataclasses.replace(attempt) if attempt else None

    async def delete(self, attempt_token: str) -> bool:
        return self._attempts.pop(attempt_token, None) is not None

    async def delete_expired(self, now: datetime) -> int:
        expired = [token for token, a in self._attempts.items() if a.expires_at < now]
        for token in expired:
            del self._attempts[token]
        return len(expired)

    def lock(self, attempt_token: str) -> asyncio.Lock:
        return self._locks.get(attempt_token)
