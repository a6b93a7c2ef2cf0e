"""
Taxonomie des erreurs d'authentification.

Chaque erreur porte un code stable (exposé tel quel par l'API) et un
statut HTTP. Les échecs de l'étape identifiants sont tous réduits à
LoginFailedError pour empêcher l'énumération des comptes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class AuthError(Exception):
    """Erreur de base du noyau d'authentification."""

    code: str = "AuthError"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.code)

    def details(self) -> Dict[str, Any]:
        """Détails structurés exposables au client."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, **self.details()}


# ── Étape identifiants (générique) ──────────────────────────────────────────


class LoginFailedError(AuthError):
    """Échec générique: identifiant inconnu, mot de passe faux, compte verrouillé ou inactif."""

    code = "LoginFailed"
    status_code = 401


# ── Second facteur ───────────────────────────────────────────────────────────


class NoActiveChallengeError(AuthError):
    code = "NoActiveChallenge"
    status_code = 404


class OTPExpiredError(AuthError):
    code = "OTPExpired"
    status_code = 410


class OTPMismatchError(AuthError):
    code = "OTPMismatch"
    status_code = 401

    def __init__(self, remaining_attempts: int) -> None:
        self.remaining_attempts = remaining_attempts
        super().__init__(f"Code incorrect, {remaining_attempts} tentative(s) restante(s)")

    def details(self) -> Dict[str, Any]:
        return {"remainingAttempts": self.remaining_attempts}


class OTPAttemptsExceededError(AuthError):
    code = "OTPAttemptsExceeded"
    status_code = 429


class OTPConsumedError(AuthError):
    code = "OTPConsumed"
    status_code = 409


class DeliveryFailedError(AuthError):
    """Livraison du code impossible; le challenge reste valide."""

    code = "DeliveryFailed"
    status_code = 503
    retryable = True

    def __init__(
        self,
        challenge_id: str,
        expires_at: Optional[datetime] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.challenge_id = challenge_id
        self.expires_at = expires_at
        self.cause = cause
        # Renseignés par la machine d'états pour permettre un renvoi
        self.attempt_token: Optional[str] = None
        self.principal_id: Optional[str] = None
        super().__init__(f"Livraison OTP échouée: {cause}")

    def details(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.attempt_token:
            result["attemptToken"] = self.attempt_token
        if self.principal_id:
            result["principalId"] = self.principal_id
        return result


# ── Sessions ─────────────────────────────────────────────────────────────────


class SessionNotFoundError(AuthError):
    code = "SessionNotFound"
    status_code = 401


class SessionExpiredError(AuthError):
    code = "SessionExpired"
    status_code = 401


class SessionRevokedError(AuthError):
    code = "SessionRevoked"
    status_code = 401


# ── Rotation du mot de passe ─────────────────────────────────────────────────


class InvalidCredentialsError(AuthError):
    code = "InvalidCredentials"
    status_code = 403


class PasswordPolicyViolationError(AuthError):
    code = "PasswordPolicyViolation"
    status_code = 422

    def __init__(self, violations: List[str]) -> None:
        self.violations = list(violations)
        super().__init__(f"Mot de passe non conforme: {', '.join(self.violations)}")

    def details(self) -> Dict[str, Any]:
        return {"violations": list(self.violations)}


class PasswordReuseError(AuthError):
    code = "PasswordReuse"
    status_code = 422


# ── Autorisation ─────────────────────────────────────────────────────────────


class PermissionDeniedError(AuthError):
    code = "PermissionDenied"
    status_code = 403


class PermissionMatrixError(Exception):
    """Matrice de permissions incomplète ou invalide (détectée au démarrage)."""

    pass
