"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the login and register responses.
  2. Authorization: Bearer <token> header -- API clients and the SPA.

Both converge on a User looked up by the token's subject (the email).

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
get_auth_service() hands route handlers the service built in the lifespan.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import User
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import decode_access_token


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via cookie or Bearer header.

    Returns the authenticated User on success, None on any failure. A valid
    token for an account that has since been deleted counts as a failure.
    """
    user_store: UserStore = request.app.state.user_store

    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    return user_store.get_by_email(payload["sub"])


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def get_auth_service(request: Request) -> AuthenticationService:
    return request.app.state.auth_service
