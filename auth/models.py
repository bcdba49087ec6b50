"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Stores and services do the work;
the only logic here is the derived profile_complete flag.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Fields that must all be set before a profile counts as complete.
PROFILE_FIELDS: tuple[str, ...] = ("first_name", "last_name", "company", "position", "location")


@dataclass
class User:
    """A registered ProConnect account.

    email is unique and never changes after registration.

    The two one-time token pairs (email verification, password reset) hold a
    bcrypt hash of the numeric code and an ISO 8601 UTC expiry. Each pair is
    either fully set or fully None; the store rejects half-written pairs.
    The raw codes only ever exist in the outgoing email.
    """

    email: str
    hashed_password: str
    id: int | None = None
    email_verified: bool = False
    email_verification_token_hash: str | None = None
    email_verification_token_expiry: str | None = None  # ISO 8601
    password_reset_token_hash: str | None = None
    password_reset_token_expiry: str | None = None  # ISO 8601
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    position: str | None = None
    location: str | None = None
    created_at: str | None = None

    @property
    def profile_complete(self) -> bool:
        return all(getattr(self, name) is not None for name in PROFILE_FIELDS)
