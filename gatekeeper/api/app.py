"""
Application FastAPI exposant le parcours de connexion.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .routes import router
from ..auth import AuthError, LoginFailedError
from ..core import AuthSettings
from ..service import AuthComponents, build_components


def create_app(
    components: Optional[AuthComponents] = None,
    settings: Optional[AuthSettings] = None,
) -> FastAPI:
    """
    Construit l'application.

    Args:
        components: Composants déjà câblés (tests, stores persistants)
        settings: Paramètres utilisés si components est absent
    """
    components = components or build_components(settings)
    logger = components.logger.child("api")

    app = FastAPI(
        title="Estate Gatekeeper",
        version="1.0.0",
        description="Authentication, OTP and session core for the estate CRM",
    )
    app.state.components = components

    # -------------------------------------------------
    # Erreurs du domaine → {"error": code, ...}
    # -------------------------------------------------
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        if isinstance(exc, LoginFailedError):
            # Corps identique quelle que soit la cause
            return JSONResponse(status_code=401, content={"error": LoginFailedError.code})
        logger.info("request rejected", path=request.url.path, error=exc.code, status=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(router)
    return app
