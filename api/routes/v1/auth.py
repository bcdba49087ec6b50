"""
api/routes/v1/auth.py -- Authentication and account REST endpoints.

Routes (all under /api/v1):
  POST   /authentication/login                          -- password login; token + cookie
  POST   /authentication/register                       -- create account; token + cookie
  GET    /authentication/user                           -- current user (requires auth)
  DELETE /authentication/delete                         -- delete own account (requires auth)
  PUT    /authentication/validate-email-verification-token?token=  (requires auth)
  GET    /authentication/send-email-verification-token  -- new code for own email (requires auth)
  PUT    /authentication/send-password-reset-token?email=
  PUT    /authentication/reset-password?newPassword=&token=&email=
  PUT    /authentication/profile                        -- update own profile (requires auth)

Handlers are plain `def`: bcrypt and SMTP block, so FastAPI runs them in its
threadpool. Domain failures propagate as AuthError subclasses and are turned
into the error envelope by the handler in api/main.py.

Security:
  Cache-Control: no-store on responses that carry a session token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import EmailStr

from api.models import (
    AuthenticationRequest,
    AuthenticationResponse,
    MessageResponse,
    Password,
    ProfileUpdate,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user
from auth.models import User
from auth.service import AuthenticationService
from auth.tokens import set_auth_cookie

# Auth policy:
# - POST   /authentication/login:                          public
# - POST   /authentication/register:                       public
# - PUT    /authentication/send-password-reset-token:      public -- the user cannot log in yet
# - PUT    /authentication/reset-password:                 public -- the code is the credential
# - everything else:                                       requires auth (get_current_user)
router = APIRouter(prefix="/authentication")


def _token_response(token: str, message: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=AuthenticationResponse(token=token, message=message).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthenticationResponse)
def login(
    body: AuthenticationRequest,
    service: AuthenticationService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; return the token and set the cookie."""
    token, message = service.login(body.email, body.password)
    return _token_response(token, message)


@router.post("/register", response_model=AuthenticationResponse)
def register(
    body: AuthenticationRequest,
    service: AuthenticationService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and log it in straight away. The email starts unverified."""
    token, message = service.register(body.email, body.password)
    return _token_response(token, message)


@router.put("/send-password-reset-token", response_model=MessageResponse)
def send_password_reset_token(
    email: EmailStr = Query(),
    service: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    service.send_password_reset_token(email)
    return MessageResponse(message=f"Password reset token sent to {email}.")


@router.put("/reset-password", response_model=MessageResponse)
def reset_password(
    new_password: Password = Query(alias="newPassword"),
    token: str = Query(min_length=1, max_length=16),
    email: EmailStr = Query(),
    service: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    service.reset_password(email, new_password, token)
    return MessageResponse(message="Password reset successful.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/user", response_model=UserResponse)
def get_user(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the account behind the presented session token."""
    return UserResponse.from_user(current_user)


@router.delete("/delete", response_model=MessageResponse)
def delete_user(
    current_user: User = Depends(get_current_user),
    service: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    service.delete_user(current_user.id)
    return MessageResponse(message="User deleted successfully.")


@router.put("/validate-email-verification-token", status_code=202, response_model=MessageResponse)
def validate_email_verification_token(
    token: str = Query(min_length=1, max_length=16),
    current_user: User = Depends(get_current_user),
    service: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    service.validate_email_verification_token(token, current_user.email)
    return MessageResponse(message="Email verified successfully.")


@router.get("/send-email-verification-token", response_model=MessageResponse)
def send_email_verification_token(
    current_user: User = Depends(get_current_user),
    service: AuthenticationService = Depends(get_auth_service),
) -> MessageResponse:
    service.send_email_verification_token(current_user.email)
    return MessageResponse(message="Email verification token sent successfully.")


@router.put("/profile", response_model=UserResponse)
def update_profile(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    service: AuthenticationService = Depends(get_auth_service),
) -> UserResponse:
    """Update profile fields on the current account. profile_complete is recomputed."""
    updated = service.update_user_profile(current_user.id, **body.model_dump())
    return UserResponse.from_user(updated)
