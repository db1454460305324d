"""
api/routes/v1/auth.py -- Registration, login and session REST endpoints.

Routes:
  POST /api/v1/auth/register    -- start onboarding; sends a one-time code
  POST /api/v1/auth/verify-otp  -- activate account; sets token cookies
  POST /api/v1/auth/resend-otp  -- new code for a pending registration
  POST /api/v1/auth/login       -- password login; sets token cookies
  POST /api/v1/auth/refresh     -- rotate refresh token; sets new cookies
  POST /api/v1/auth/logout      -- revoke refresh token; clears cookies (requires auth)
  GET  /api/v1/auth/session     -- current user summary (requires auth)

Security:
  Public endpoints are rate-limited per IP (AUTH_RATE_LIMIT).
  Cache-Control: no-store on every response that carries tokens.
  A failed refresh clears both cookies so a browser stops replaying a dead token.

Handlers are plain `def`: the engine does blocking argon2 and database work,
and FastAPI runs sync handlers on its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import auth_rate_limit, limiter
from api.models import (
    AuthResponse,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResendOtpRequest,
    UserResponse,
    VerifyOtpRequest,
)
from auth.dependencies import get_current_identity
from auth.engine import AuthEngine
from auth.errors import UnauthorizedError
from auth.models import AuthResult, Identity
from auth.tokens import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:    public, rate-limited
# - POST /api/v1/auth/verify-otp:  public, rate-limited
# - POST /api/v1/auth/resend-otp:  public, rate-limited
# - POST /api/v1/auth/login:       public, rate-limited
# - POST /api/v1/auth/refresh:     refresh token (cookie or body), no access token needed
# - POST /api/v1/auth/logout:      requires auth (get_current_identity)
# - GET  /api/v1/auth/session:     requires auth (get_current_identity)
router = APIRouter()


def _engine(request: Request) -> AuthEngine:
    return request.app.state.auth_engine


def _token_response(result: AuthResult) -> JSONResponse:
    """Serialize an AuthResult, set both cookies, forbid caching."""
    settings = get_settings()
    access_max_age = settings.access_token_expire_minutes * 60
    resp = JSONResponse(
        status_code=200,
        content=AuthResponse.from_result(result, expires_in=access_max_age).model_dump(),
    )
    set_auth_cookies(
        resp,
        result.tokens,
        access_max_age=access_max_age,
        refresh_max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)
@router.post("/auth/register", response_model=MessageResponse)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Create (or replace) a pending registration and send a one-time code.

    Returns 409 if an account with this email is already active.
    """
    _engine(request).register(body.email, body.password, body.name, body.phone_number)
    return MessageResponse(message="OTP sent successfully")


@limiter.limit(auth_rate_limit)
@router.post("/auth/verify-otp", response_model=AuthResponse)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Activate the account for (email, otp) and start a session.

    Wrong email and wrong code return the same 401 so the endpoint cannot be
    used to discover pending registrations.
    """
    if len(body.otp) != get_settings().otp_length:
        raise UnauthorizedError("Invalid OTP or email", reason="invalid")
    result = _engine(request).verify_otp(body.email, body.otp)
    return _token_response(result)


@limiter.limit(auth_rate_limit)
@router.post("/auth/resend-otp", response_model=MessageResponse)
def resend_otp(request: Request, body: ResendOtpRequest) -> MessageResponse:
    """Regenerate the code for a pending registration and reset its expiry."""
    _engine(request).resend_otp(body.email)
    return MessageResponse(message="OTP resent successfully")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@limiter.limit(auth_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set token cookies.

    Returns the same 401 for unknown email and wrong password.
    """
    result = _engine(request).login(body.email, body.password)
    return _token_response(result)


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Exchange the current refresh token for a new pair.

    The token comes from the refresh_token cookie, or the JSON body for
    non-browser clients. A 401 clears both cookies: either the token was bad,
    or it was reused and the session is already revoked. Other errors (store
    unavailable) leave the cookies alone so the client can retry.
    """
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    try:
        if not presented:
            raise UnauthorizedError("Missing refresh token", reason="missing")
        result = _engine(request).refresh(presented)
    except UnauthorizedError as exc:
        resp = JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
        )
        clear_auth_cookies(resp)
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _token_response(result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    """Revoke the refresh token and clear both cookies."""
    _engine(request).logout(identity.user_id)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_auth_cookies(resp)
    return resp


@router.get("/auth/session", response_model=UserResponse)
def session(request: Request, identity: Identity = Depends(get_current_identity)) -> UserResponse:
    """Return the public-safe summary of the authenticated user.

    404 if the account was deleted after the access token was issued.
    """
    return UserResponse.from_summary(_engine(request).get_session(identity.user_id))
