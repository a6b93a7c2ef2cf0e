"""
Schémas HTTP (noms de champs camelCase côté client).
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Requêtes ─────────────────────────────────────────────────────────────────


class LoginRequest(_CamelModel):
    email: str
    password: str


class VerifyOTPRequest(_CamelModel):
    principal_id: str = Field(alias="principalId")
    code: str
    attempt_token: Optional[str] = Field(default=None, alias="attemptToken")


class ResendOTPRequest(_CamelModel):
    attempt_token: Optional[str] = Field(default=None, alias="attemptToken")


class ChangePasswordRequest(_CamelModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")
    attempt_token: Optional[str] = Field(default=None, alias="attemptToken")


# ── Réponses ─────────────────────────────────────────────────────────────────


class LoginResponse(_CamelModel):
    """
    status: "otp_required", "password_change_required" ou "authenticated"
    """

    status: str
    principal_id: Optional[str] = Field(default=None, alias="principalId")
    attempt_token: Optional[str] = Field(default=None, alias="attemptToken")
    challenge_expires_at: Optional[datetime] = Field(default=None, alias="challengeExpiresAt")
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")


class ChangePasswordResponse(_CamelModel):
    """Vide après une rotation authentifiée; étape de connexion sinon."""

    status: Optional[str] = None
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    revoked_sessions: Optional[int] = Field(default=None, alias="revokedSessions")


class SessionResponse(_CamelModel):
    principal_id: str = Field(alias="principalId")
    role: str
    role_name: str = Field(alias="roleName")
    expires_at: datetime = Field(alias="expiresAt")
    resources: List[str]
    permissions: Dict[str, List[str]]


class SessionSummary(_CamelModel):
    session_id: str = Field(alias="sessionId")
    issued_at: datetime = Field(alias="issuedAt")
    expires_at: datetime = Field(alias="expiresAt")
    current: bool = False
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")


class RevokedResponse(_CamelModel):
    revoked: int
