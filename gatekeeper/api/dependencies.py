"""
Dépendances FastAPI: composants, session courante, contrôle de permission.
"""

from datetime import datetime

from fastapi import Depends, Request, Response

from ..auth import PermissionDeniedError, SessionPrincipal
from ..auth.interfaces import PermissionLike, ResourceLike
from ..service import AuthComponents


def get_components(request: Request) -> AuthComponents:
    return request.app.state.components


def set_session_cookie(response: Response, components: AuthComponents, token: str, expires_at: datetime) -> None:
    """Cookie de session: même échéance que la session côté serveur."""
    settings = components.settings.session
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.ttl_seconds,
        expires=expires_at,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )


async def get_current_session(
    request: Request,
    response: Response,
    components: AuthComponents = Depends(get_components),
) -> SessionPrincipal:
    """
    Session du cookie, validée à chaque requête.

    Avec l'expiration glissante, le cookie est réémis avec la nouvelle
    échéance: sans cela le navigateur l'abandonnerait à l'échéance initiale.

    Raises:
        SessionNotFoundError, SessionRevokedError, SessionExpiredError
    """
    token = request.cookies.get(components.settings.session.cookie_name)
    session = await components.sessions.validate(token)
    if components.settings.session.sliding_expiration:
        set_session_cookie(response, components, token, session.expires_at)
    return session


def require_permission(resource: ResourceLike, permission: PermissionLike):
    """
    Dépendance exigeant une permission de la matrice.

    Example:
        @router.get("/leads", dependencies=[Depends(require_permission("leads", "read"))])
    """

    async def checker(
        session: SessionPrincipal = Depends(get_current_session),
        components: AuthComponents = Depends(get_components),
    ) -> SessionPrincipal:
        if not components.permissions.has_permission(session.role, resource, permission):
            raise PermissionDeniedError()
        return session

    return checker
