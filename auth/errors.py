"""
auth/errors.py -- Failure taxonomy for the credential and token lifecycle.

Every rejected auth operation raises one of these. They are caller-input or
state errors: nothing here is retried. Each carries a stable machine-readable
code and a human-readable message; api/main.py maps the class to an HTTP
status so this module stays free of web concerns.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for rejected authentication operations."""

    code: str = "auth_error"
    default_message: str = "Authentication operation failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmailError(AuthError):
    code = "duplicate_email"
    default_message = "A user with that email already exists."


class UserNotFoundError(AuthError):
    code = "user_not_found"
    default_message = "User not found."


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"
    default_message = "Password is incorrect."


class AlreadyVerifiedOrNotFoundError(AuthError):
    # Deliberately one error for two causes: callers cannot tell "no such
    # user" from "already verified".
    code = "already_verified_or_not_found"
    default_message = "Email verification token failed, or email is already verified."


class TokenInvalidError(AuthError):
    code = "token_invalid"
    default_message = "Token is invalid."


class TokenExpiredError(AuthError):
    code = "token_expired"
    default_message = "Token has expired."
