"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. The auth cookie (name from settings, default "b5_auth_token") -- set by
     register/login for browser frontends.
  2. Authorization: Bearer <token> header -- API clients and mobile apps.

A token must decode, must not be on the revoked-token deny-list (logout,
refresh), and must belong to an active, non-banned user.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

The decoded payload is stashed on request.state.token_payload so logout and
refresh can revoke the exact jti that authenticated the request.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.store import UserStore
from auth.tokens import decode_access_token
from core.config import get_settings


def _presented_token(request: Request) -> str | None:
    token = request.cookies.get(get_settings().auth_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request. Returns the User or None; never raises."""
    user_store: UserStore = request.app.state.user_store

    token = _presented_token(request)
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None or user_store.is_token_revoked(payload["jti"]):
        return None

    user = user_store.find_by_id(payload["user_id"])
    if user is None or user.ban or not user.is_active:
        return None

    request.state.token_payload = payload
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
