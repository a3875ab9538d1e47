"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register                          -- create account; sets JWT cookie; 201
  POST /api/v1/auth/login                             -- password login; sets JWT cookie
  POST /api/v1/auth/logout                            -- revoke token, clear cookie (requires auth)
  POST /api/v1/auth/refresh                           -- rotate token (requires auth)
  GET  /api/v1/auth/user                              -- current user (requires auth)
  POST /api/v1/auth/email/verification-notification   -- resend verification link (requires auth)
  GET  /api/v1/auth/email/verify/{user_id}/{hash}     -- confirm email address (public)
  POST /api/v1/auth/password/forgot                   -- request reset link (public)
  POST /api/v1/auth/password/reset                    -- set new password with token (public)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a token.
  The cookie domain is resolved per request from Origin/Referer so each
  frontend tenant gets a cookie scoped to its own registrable domain.
  /password/forgot answers identically whether or not the email exists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthTokenResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailResponse,
)
from auth.accounts import AccountService
from auth.cookies import registration_domain, resolve_cookie_domain
from auth.dependencies import get_current_user
from auth.errors import (
    AccountError,
    EmailAlreadyRegistered,
    EmailAlreadyVerified,
    InvalidResetToken,
    InvalidVerificationLink,
    ResetTokenExpired,
    UserNotFound,
)
from auth.models import User
from auth.store import UserStore
from auth.tokens import (
    authenticate_user,
    clear_auth_cookie,
    create_access_token,
    set_auth_cookie,
    token_expiry,
)
from core.config import get_settings

router = APIRouter()

_settings = get_settings()

_STATUS_BY_ERROR: dict[type[AccountError], int] = {
    EmailAlreadyRegistered: 409,
    EmailAlreadyVerified: 400,
    UserNotFound: 404,
    InvalidVerificationLink: 403,
    InvalidResetToken: 422,
    ResetTokenExpired: 422,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _account_error(exc: AccountError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_ERROR.get(type(exc), 400),
        detail={"code": exc.code, "message": exc.message},
    )


def _cookie_domain(request: Request) -> str | None:
    return resolve_cookie_domain(
        request.headers.get("Origin"),
        request.headers.get("Referer"),
        _settings.allowed_cookie_domains,
        _settings.session_domain,
    )


def _token_response(request: Request, user: User, message: str, status_code: int = 200) -> JSONResponse:
    """Issue a fresh JWT for user, return it in the body and as the auth cookie."""
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthTokenResponse(
            token=token,
            expires_in=_settings.token_expire_seconds,
            message=message,
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, domain=_cookie_domain(request))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _revoke_presented_token(request: Request) -> None:
    payload = getattr(request.state, "token_payload", None)
    if payload:
        user_store: UserStore = request.app.state.user_store
        user_store.revoke_token(payload["jti"], token_expiry(payload))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthTokenResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account, attach the referrer from ?ref= if it is acceptable, log in.

    An unusable ref (unknown key, banned or inactive referrer) is dropped
    silently; registration still succeeds with no referrer recorded.
    """
    accounts: AccountService = request.app.state.accounts
    domain = registration_domain(
        request.headers.get("Origin"),
        request.headers.get("Referer"),
        _settings.frontend_url,
    )
    try:
        user = accounts.register(
            name=body.name,
            email=body.email,
            password=body.password,
            referrer_key=body.ref,
            registration_domain=domain,
            company_name=body.company_name,
            region=body.region,
            phone=body.phone,
        )
    except AccountError as exc:
        raise _account_error(exc) from exc

    return _token_response(
        request,
        user,
        "Registration successful. Please check your email to verify your account.",
        status_code=201,
    )


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthTokenResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for unknown email, wrong password and
    disabled accounts to avoid leaking which one it was.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "The provided credentials are incorrect."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    return _token_response(request, user, "Login successful")


@router.get("/auth/email/verify/{user_id}/{hash}", response_model=VerifyEmailResponse)
async def verify_email(request: Request, user_id: int, hash: str) -> VerifyEmailResponse:  # noqa: A002
    """Confirm an email address from the link sent at registration."""
    accounts: AccountService = request.app.state.accounts
    try:
        user, already_verified = accounts.verify_email(user_id, hash)
    except AccountError as exc:
        raise _account_error(exc) from exc

    return VerifyEmailResponse(
        message="Email was already verified." if already_verified else "Email verified.",
        already_verified=already_verified,
        user=UserResponse.from_user(user),
    )


@router.post("/auth/password/forgot", response_model=MessageResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Send a reset link if the email is registered. The answer is the same either way."""
    accounts: AccountService = request.app.state.accounts
    accounts.request_password_reset(body.email)
    return MessageResponse(message="If the email exists, a password reset link has been sent to it.")


@router.post("/auth/password/reset", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    accounts: AccountService = request.app.state.accounts
    try:
        accounts.reset_password(body.email, body.token, body.password)
    except AccountError as exc:
        raise _account_error(exc) from exc
    return MessageResponse(message="Password changed. You can now log in with the new password.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Revoke the presented token and clear the cookie on the domain it was set for."""
    _revoke_presented_token(request)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_auth_cookie(resp, domain=_cookie_domain(request))
    return resp


@router.post("/auth/refresh", response_model=AuthTokenResponse)
async def refresh(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Exchange a valid token for a new one. The old jti is revoked."""
    _revoke_presented_token(request)
    return _token_response(request, current_user, "Token refreshed successfully")


@router.get("/auth/user", response_model=UserResponse)
async def current_user_info(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(current_user)


@limiter.limit(_settings.verification_rate_limit)
@router.post("/auth/email/verification-notification", response_model=MessageResponse)
async def send_verification(request: Request, current_user: User = Depends(get_current_user)) -> MessageResponse:
    accounts: AccountService = request.app.state.accounts
    try:
        accounts.send_verification(current_user)
    except AccountError as exc:
        raise _account_error(exc) from exc
    return MessageResponse(message="Verification email sent.")
