"""
auth/service.py -- Credential and token lifecycle for ProConnect accounts.

AuthenticationService owns registration, login, email verification, password
reset and session issuance. It is the only place that decides whether a
one-time code is valid.

One-time codes:
  5 decimal digits, stored only as a bcrypt hash with an expiry of issue time
  plus TOKEN_EXPIRY_MINUTES. Expiry is checked lazily when a code is
  presented; nothing sweeps stale codes. Asking for a new code overwrites the
  old hash and expiry.

Validation order (verification and reset alike):
  1. no such user, or the code does not match the stored hash -> TokenInvalidError
  2. code matches but the expiry has passed                   -> TokenExpiredError
  3. otherwise the operation is applied and the pair is cleared
  The hash check always runs first and always costs one bcrypt call, so
  "wrong code" and "right code, expired" cannot be told apart by timing.

Email delivery is best-effort. A failed send is logged and the operation
still succeeds; the user can request another code.

Dependencies are injected: the store, the email sender, a clock returning an
aware UTC datetime, and a logger.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.email import EmailSender
from auth.errors import (
    AlreadyVerifiedOrNotFoundError,
    DuplicateEmailError,
    InvalidCredentialsError,
    TokenExpiredError,
    TokenInvalidError,
    UserNotFoundError,
)
from auth.models import PROFILE_FIELDS, User
from auth.store import UserStore
from auth.tokens import DUMMY_HASH, create_access_token, generate_numeric_token, hash_password, verify_password

TOKEN_EXPIRY_MINUTES = 1

_VERIFICATION_SUBJECT = "Email Verification"
_VERIFICATION_BODY = (
    "Only one step to take full advantage of ProConnect.\n\n"
    "Enter this code to verify your email: {token}. "
    "The code will expire in {minutes} minute(s)."
)

_RESET_SUBJECT = "Password Reset"
_RESET_BODY = (
    "You requested a password reset.\n\n"
    "Enter this code to reset your password: {token}. "
    "The code will expire in {minutes} minute(s)."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthenticationService:
    """Registration, login, verification and reset over a UserStore."""

    def __init__(
        self,
        store: UserStore,
        email_sender: EmailSender,
        *,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._email = email_sender
        self._clock = clock or _utcnow
        self._logger = logger or logging.getLogger("proconnect.auth.service")

    # ------------------------------------------------------------------
    # Codes
    # ------------------------------------------------------------------

    @staticmethod
    def generate_token() -> str:
        """Return a fresh 5-digit code. The caller hashes it before storing."""
        return generate_numeric_token()

    def _new_expiry(self) -> str:
        return (self._clock() + timedelta(minutes=TOKEN_EXPIRY_MINUTES)).isoformat()

    def _check_code(self, user: User | None, token: str, hashed: str | None, expiry: str | None, label: str) -> None:
        """Apply the invalid -> expired precedence. Returns only if the code is usable."""
        if user is None or hashed is None:
            verify_password(token, DUMMY_HASH)
            raise TokenInvalidError(f"{label} token failed.")
        if not verify_password(token, hashed):
            raise TokenInvalidError(f"{label} token failed.")
        if expiry is None or datetime.fromisoformat(expiry) < self._clock():
            raise TokenExpiredError(f"{label} token expired.")

    def _send(self, to_email: str, subject: str, body: str) -> None:
        try:
            sent = self._email.send_email(to_email, subject, body)
        except Exception:
            self._logger.exception("Error while sending email to %s", to_email)
            return
        if not sent:
            self._logger.warning("Email to %s was not delivered", to_email)

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, raw_password: str) -> tuple[str, str]:
        """Create an unverified account and email it a verification code.

        The account row, its password hash and the first verification code
        are written in one insert. Raises DuplicateEmailError when the email
        is taken, including when a concurrent request wins the race.
        """
        token = self.generate_token()
        user = User(
            email=email,
            hashed_password=hash_password(raw_password),
            email_verification_token_hash=hash_password(token),
            email_verification_token_expiry=self._new_expiry(),
        )
        try:
            user_id = self._store.create_user(user)
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        self._logger.info("Registered user %s (id=%s)", email, user_id)

        self._send(
            email,
            _VERIFICATION_SUBJECT,
            _VERIFICATION_BODY.format(token=token, minutes=TOKEN_EXPIRY_MINUTES),
        )
        return create_access_token(email), "User registered successfully."

    def login(self, email: str, raw_password: str) -> tuple[str, str]:
        """Check credentials and issue a session token. Verification is not required."""
        user = self._store.get_by_email(email)
        if user is None:
            verify_password(raw_password, DUMMY_HASH)
            raise UserNotFoundError()
        if not verify_password(raw_password, user.hashed_password):
            raise InvalidCredentialsError()
        return create_access_token(user.email), "Authentication succeeded."

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def send_email_verification_token(self, email: str) -> None:
        user = self._store.get_by_email(email)
        if user is None or user.email_verified:
            raise AlreadyVerifiedOrNotFoundError()

        token = self.generate_token()
        self._store.update_user(
            user.id,
            email_verification_token_hash=hash_password(token),
            email_verification_token_expiry=self._new_expiry(),
        )
        self._send(
            email,
            _VERIFICATION_SUBJECT,
            _VERIFICATION_BODY.format(token=token, minutes=TOKEN_EXPIRY_MINUTES),
        )

    def validate_email_verification_token(self, token: str, email: str) -> None:
        user = self._store.get_by_email(email)
        self._check_code(
            user,
            token,
            user.email_verification_token_hash if user else None,
            user.email_verification_token_expiry if user else None,
            "Email verification",
        )
        self._store.update_user(
            user.id,
            email_verified=True,
            email_verification_token_hash=None,
            email_verification_token_expiry=None,
        )
        self._logger.info("Email verified for user id=%s", user.id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def send_password_reset_token(self, email: str) -> None:
        user = self._store.get_by_email(email)
        if user is None:
            raise UserNotFoundError()

        token = self.generate_token()
        self._store.update_user(
            user.id,
            password_reset_token_hash=hash_password(token),
            password_reset_token_expiry=self._new_expiry(),
        )
        self._send(
            email,
            _RESET_SUBJECT,
            _RESET_BODY.format(token=token, minutes=TOKEN_EXPIRY_MINUTES),
        )

    def reset_password(self, email: str, new_password: str, token: str) -> None:
        user = self._store.get_by_email(email)
        self._check_code(
            user,
            token,
            user.password_reset_token_hash if user else None,
            user.password_reset_token_expiry if user else None,
            "Password reset",
        )
        self._store.update_user(
            user.id,
            hashed_password=hash_password(new_password),
            password_reset_token_hash=None,
            password_reset_token_expiry=None,
        )
        self._logger.info("Password reset for user id=%s", user.id)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def get_user(self, email: str) -> User:
        user = self._store.get_by_email(email)
        if user is None:
            raise UserNotFoundError()
        return user

    def delete_user(self, user_id: int) -> bool:
        """Delete the account. Returns False if there was nothing to delete."""
        deleted = self._store.delete_user(user_id)
        if deleted:
            self._logger.info("Deleted user id=%s", user_id)
        return deleted

    def update_user_profile(
        self,
        user_id: int,
        first_name: str | None = None,
        last_name: str | None = None,
        company: str | None = None,
        position: str | None = None,
        location: str | None = None,
    ) -> User:
        """Set the given profile fields. None means "leave unchanged"."""
        values = dict(zip(PROFILE_FIELDS, (first_name, last_name, company, position, location)))
        updates = {name: value for name, value in values.items() if value is not None}
        if self._store.get_by_id(user_id) is None:
            raise UserNotFoundError()
        if updates:
            self._store.update_user(user_id, **updates)
        return self._store.get_by_id(user_id)
