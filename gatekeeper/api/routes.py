"""
Routes HTTP du parcours de connexion et des sessions.

Le jeton de session voyage dans un cookie httpOnly, Secure, SameSite=Strict
dont l'expiration correspond à celle de la session. Le jeton d'essai d'un
parcours en attente est renvoyé dans le corps et dans un cookie httpOnly.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from .dependencies import get_components, get_current_session, require_permission, set_session_cookie
from .schemas import (
    ChangePasswordRequest,
    ChangePasswordResponse,
    LoginRequest,
    LoginResponse,
    ResendOTPRequest,
    RevokedResponse,
    SessionResponse,
    SessionSummary,
    VerifyOTPRequest,
)
from ..auth import (
    DeliveryFailedError,
    LoginState,
    LoginStep,
    Permission,
    Resource,
    ROLE_DISPLAY_NAMES,
    SessionNotFoundError,
    SessionPrincipal,
)
from ..service import AuthComponents


ATTEMPT_COOKIE = "gk_login_attempt"

STATUS_BY_STATE = {
    LoginState.AWAITING_OTP: "otp_required",
    LoginState.AWAITING_PASSWORD_CHANGE: "password_change_required",
    LoginState.AUTHENTICATED: "authenticated",
}

router = APIRouter(tags=["Auth"])


# ============================================================
# COOKIES
# ============================================================
def _set_attempt_cookie(response: Response, components: AuthComponents, attempt_token: str) -> None:
    response.set_cookie(
        key=ATTEMPT_COOKIE,
        value=attempt_token,
        max_age=components.settings.login_attempt_ttl_seconds,
        path="/",
        secure=components.settings.session.cookie_secure,
        httponly=True,
        samesite=components.settings.session.cookie_samesite,
    )


def _clear_attempt_cookie(response: Response, components: AuthComponents) -> None:
    response.delete_cookie(
        ATTEMPT_COOKIE,
        path="/",
        secure=components.settings.session.cookie_secure,
        httponly=True,
        samesite=components.settings.session.cookie_samesite,
    )


def _attempt_token(request: Request, explicit: Optional[str]) -> Optional[str]:
    return explicit or request.cookies.get(ATTEMPT_COOKIE)


def _step_response(response: Response, components: AuthComponents, step: LoginStep) -> LoginResponse:
    if step.state is LoginState.AUTHENTICATED:
        set_session_cookie(response, components, step.session_token, step.session.expires_at)
        _clear_attempt_cookie(response, components)
        return LoginResponse(
            status=STATUS_BY_STATE[step.state],
            principal_id=step.principal_id,
            session_token=step.session_token,
            expires_at=step.session.expires_at,
        )

    _set_attempt_cookie(response, components, step.attempt_token)
    return LoginResponse(
        status=STATUS_BY_STATE[step.state],
        principal_id=step.principal_id,
        attempt_token=step.attempt_token,
        challenge_expires_at=step.challenge_expires_at,
    )


def _delivery_failed(components: AuthComponents, error: DeliveryFailedError) -> JSONResponse:
    response = JSONResponse(status_code=error.status_code, content=error.to_dict())
    if error.attempt_token:
        _set_attempt_cookie(response, components, error.attempt_token)
    return response


def _client(request: Request):
    host = request.client.host if request.client else None
    return host, request.headers.get("user-agent")


# ============================================================
# LOGIN FLOW
# ============================================================
@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Authenticate with email and password",
)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    components: AuthComponents = Depends(get_components),
):
    ip_address, user_agent = _client(request)
    try:
        step = await components.login.begin(payload.email, payload.password, ip_address, user_agent)
    except DeliveryFailedError as e:
        return _delivery_failed(components, e)
    return _step_response(response, components, step)


@router.post(
    "/verify-otp",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Submit the one-time code",
)
async def verify_otp(
    payload: VerifyOTPRequest,
    request: Request,
    response: Response,
    components: AuthComponents = Depends(get_components),
):
    step = await components.login.submit_otp(
        _attempt_token(request, payload.attempt_token),
        payload.code,
        principal_id=payload.principal_id,
    )
    return _step_response(response, components, step)


@router.post(
    "/resend-otp",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    summary="Issue a fresh one-time code",
)
async def resend_otp(
    request: Request,
    response: Response,
    payload: Optional[ResendOTPRequest] = None,
    components: AuthComponents = Depends(get_components),
):
    explicit = payload.attempt_token if payload else None
    try:
        step = await components.login.resend_otp(_attempt_token(request, explicit))
    except DeliveryFailedError as e:
        return _delivery_failed(components, e)
    return _step_response(response, components, step)


@router.post(
    "/change-password",
    response_model=ChangePasswordResponse,
    response_model_exclude_none=True,
    summary="Rotate the password",
)
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    response: Response,
    components: AuthComponents = Depends(get_components),
):
    """
    Deux usages:
        - parcours en AwaitingPasswordChange: rotation imposée puis session
        - session valide: rotation, les autres sessions sont révoquées

    Un parcours en attente l'emporte sur le cookie de session, qui peut
    être celui d'une session révoquée par la réinitialisation.
    """
    attempt_token = _attempt_token(request, payload.attempt_token)
    session_token = request.cookies.get(components.settings.session.cookie_name)
    pending = await components.login.pending_state(attempt_token)

    if session_token and pending is not LoginState.AWAITING_PASSWORD_CHANGE and not payload.attempt_token:
        session = await components.sessions.validate(session_token)
        result = await components.credentials.rotate(
            session.principal_id,
            payload.current_password,
            payload.new_password,
            keep_session_id=session.session_id,
        )
        return ChangePasswordResponse(revoked_sessions=result.revoked_sessions)

    if not attempt_token:
        raise SessionNotFoundError()

    step = await components.login.submit_password_change(
        attempt_token, payload.current_password, payload.new_password
    )
    set_session_cookie(response, components, step.session_token, step.session.expires_at)
    _clear_attempt_cookie(response, components)
    return ChangePasswordResponse(
        status=STATUS_BY_STATE[step.state],
        session_token=step.session_token,
        expires_at=step.session.expires_at,
    )


@router.post("/logout", summary="Revoke the current session")
async def logout(
    request: Request,
    response: Response,
    components: AuthComponents = Depends(get_components),
):
    settings = components.settings.session
    token = request.cookies.get(settings.cookie_name)
    if token:
        await components.sessions.revoke(token, reason="logout")

    attempt_token = request.cookies.get(ATTEMPT_COOKIE)
    if attempt_token:
        await components.login.abandon(attempt_token)
        _clear_attempt_cookie(response, components)

    response.delete_cookie(
        settings.cookie_name,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite=settings.cookie_samesite,
    )
    return {}


# ============================================================
# SESSIONS
# ============================================================
@router.get("/session", response_model=SessionResponse, summary="Current session")
async def read_session(
    session: SessionPrincipal = Depends(get_current_session),
    components: AuthComponents = Depends(get_components),
):
    matrix = components.permissions
    return SessionResponse(
        principal_id=session.principal_id,
        role=session.role.value,
        role_name=ROLE_DISPLAY_NAMES[session.role],
        expires_at=session.expires_at,
        resources=sorted(r.value for r in matrix.accessible_resources(session.role)),
        permissions=matrix.as_dict(session.role),
    )


@router.get("/sessions", response_model=List[SessionSummary], summary="Live sessions of the caller")
async def list_sessions(
    session: SessionPrincipal = Depends(get_current_session),
    components: AuthComponents = Depends(get_components),
):
    return [
        SessionSummary(
            session_id=s.session_id,
            issued_at=s.issued_at,
            expires_at=s.expires_at,
            current=s.session_id == session.session_id,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
        )
        for s in await components.sessions.list_sessions(session.principal_id)
    ]


@router.post(
    "/principals/{principal_id}/revoke-sessions",
    response_model=RevokedResponse,
    summary="Revoke every session of a principal",
)
async def revoke_principal_sessions(
    principal_id: str,
    session: SessionPrincipal = Depends(require_permission(Resource.USER_MANAGEMENT, Permission.UPDATE)),
    components: AuthComponents = Depends(get_components),
):
    revoked = await components.sessions.revoke_all(principal_id, reason="admin_revocation")
    components.logger.info("sessions revoked by admin", principal_id=principal_id, actor=session.principal_id)
    return RevokedResponse(revoked=revoked)
