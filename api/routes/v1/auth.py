"""
api/routes/v1/auth.py -- Authentication and account-approval REST endpoints.

Routes:
  POST /api/v1/auth/register                -- create account (pending by default)
  POST /api/v1/auth/login                   -- password login; sets token cookie
  POST /api/v1/auth/logout                  -- deletes session, clears cookie; always 200
  GET  /api/v1/auth/me                      -- current user (requires auth)
  POST /api/v1/auth/refresh                 -- rotate token; old one revoked (requires auth)
  GET  /api/v1/auth/users/pending           -- accounts awaiting approval (admin only)
  POST /api/v1/auth/users/{user_id}/approve -- approve an account (admin only)

Security:
  POST /login and /refresh are rate-limited per IP; /register more tightly.
  Login failures for unknown email and wrong password return the same
    bad_credentials body. AuthService equalizes their timing.
  Cache-Control: no-store on every response that carries a token.
  There are deliberately no endpoints that list or clear all users.

Error rendering: AuthService raises typed errors (auth/errors.py); the
exception handler in api/main.py turns them into the ErrorResponse envelope.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, REGISTER_LIMIT, limiter
from api.models import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from auth.dependencies import get_current_user, get_request_token, require_admin
from auth.errors import ForbiddenError
from auth.models import User
from auth.service import AuthService, LoginResult
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Auth policy:
# - POST /auth/register:                  public (403 when self-registration is disabled)
# - POST /auth/login:                     public
# - POST /auth/logout:                    public -- a bad token still gets a clean logout
# - GET  /auth/me:                        requires auth (get_current_user)
# - POST /auth/refresh:                   requires a live token (checked by AuthService.refresh)
# - GET  /auth/users/pending:             requires admin (require_admin)
# - POST /auth/users/{user_id}/approve:   requires admin (require_admin)
router = APIRouter()


def _token_response(request: Request, result: LoginResult) -> JSONResponse:
    """Build the JSON body + cookie for a freshly issued token."""
    settings = request.app.state.settings
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user=UserResponse.from_user(result.user),
            token=result.token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
        ).model_dump(),
    )
    set_auth_cookie(resp, result.token, max_age=result.expires_in, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(REGISTER_LIMIT)
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account.

    With approval gating on (the default) the account is pending and no token
    is returned -- the user logs in separately once an admin approves it.
    """
    settings = request.app.state.settings
    if not settings.self_registration_enabled:
        raise ForbiddenError("Self-registration is disabled.")

    service: AuthService = request.app.state.auth_service
    registration = service.register(body.email, body.name, body.password)

    if registration.token is None:
        message = "Registration successful. Your account is awaiting administrator approval."
    else:
        message = "Registration successful."
    resp = JSONResponse(
        status_code=201,
        content=RegisterResponse(
            user=UserResponse.from_user(registration.user),
            token=registration.token,
            message=message,
        ).model_dump(),
    )
    if registration.token is not None:
        set_auth_cookie(resp, registration.token, max_age=registration.expires_in, secure=settings.secure_cookies)
        resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(LOGIN_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the token cookie.

    Wrong password and unknown email both surface as 401 bad_credentials.
    A correct password on a pending account surfaces as 403 account_pending.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password, remember=body.remember)
    return _token_response(request, result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """Delete the caller's session (if any) and clear the cookie."""
    service: AuthService = request.app.state.auth_service
    service.logout(get_request_token(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_auth_cookie(resp, secure=request.app.state.settings.secure_cookies)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the currently authenticated user."""
    return MeResponse(user=UserResponse.from_user(current_user))


@limiter.limit(LOGIN_LIMIT)
@router.post("/auth/refresh", response_model=LoginResponse)
def refresh(request: Request) -> JSONResponse:
    """Exchange a live token for a new one. The presented token stops working immediately."""
    service: AuthService = request.app.state.auth_service
    result = service.refresh(get_request_token(request))
    return _token_response(request, result)


# ---------------------------------------------------------------------------
# Account approval (admin only)
# ---------------------------------------------------------------------------


@router.get("/auth/users/pending", response_model=list[UserResponse])
def list_pending_users(request: Request, admin: User = Depends(require_admin)) -> list[UserResponse]:
    """List accounts awaiting approval, oldest first."""
    service: AuthService = request.app.state.auth_service
    return [UserResponse.from_user(u) for u in service.list_pending(admin)]


@router.post("/auth/users/{user_id}/approve", response_model=UserResponse)
def approve_user(request: Request, user_id: int, admin: User = Depends(require_admin)) -> UserResponse:
    """Approve a pending account. Approving an approved account is a no-op."""
    service: AuthService = request.app.state.auth_service
    return UserResponse.from_user(service.approve(admin, user_id))
