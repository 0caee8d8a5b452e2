"""
api/routes/v1/auth.py -- Account and authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup   -- register an account (public)
  POST /api/v1/auth/login    -- password login; returns JWT and sets cookie (public)
  POST /api/v1/auth/logout   -- clears cookie (public)
  GET  /api/v1/auth/me       -- current account (requires auth)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  The same generic error is returned for unknown email and wrong password.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, SignupRequest, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("auctionhouse.api.auth")

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit("20/minute")
@router.post("/auth/signup", response_model=UserResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> UserResponse:
    """Register a new account. The email becomes the caller's auction identity."""
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(User(email=body.email, hashed_password=hash_password(body.password)))
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "An account with that email already exists."},
        ) from exc
    logger.info("Account created (user_id=%s)", user_id)
    return _user_to_response(user_store.get_by_id(user_id))


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a JWT and set it as a cookie."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    expires_in = get_settings().token_expire_seconds
    token = create_access_token(user.id, user.email, expire_seconds=expires_in)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            expires_in=expires_in,
            email=user.email,
        ).model_dump(),
    )
    set_auth_cookie(resp, token, expire_seconds=expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated account."""
    return _user_to_response(current_user)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id,
        email=user.email,
        is_active=user.is_active,
        created_at=user.created_at or "",
    )
