"""
auth/tokens.py -- Password hashing, session JWTs and one-time numeric codes.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       user's email as the subject plus an expiry. They are stateless: there is
       no server-side session table, so a token is valid until its exp claim.
       Verification returns None on any failure -- the dependency layer turns
       that into a 401.

  Passwords: bcrypt directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds.

  One-time codes: 5 decimal digits drawn from the secrets module. They are
       hashed with the same bcrypt function before storage, so a leaked users
       table does not hand out live verification or reset codes, and matching
       always goes through bcrypt.checkpw rather than a string comparison.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("proconnect.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

TOKEN_LENGTH = 5

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext (password or one-time code).

    bcrypt rejects inputs longer than 72 bytes with ValueError. The API layer
    validates the UTF-8 byte length of passwords before they get here.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext matches the bcrypt hash.

    A missing hash never matches. A malformed stored hash is treated as a
    mismatch rather than an error.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored hash is not a valid bcrypt hash")
        return False


# Timing equalization dummy hash.
# Computed once at module load. Checks for unknown users run bcrypt against it
# so a missing account costs the same as a wrong password or a wrong code.
DUMMY_HASH: str = hash_password("proconnect_timing_dummy")


# ---------------------------------------------------------------------------
# One-time numeric codes
# ---------------------------------------------------------------------------


def generate_numeric_token(length: int = TOKEN_LENGTH) -> str:
    """Return a string of `length` decimal digits, each uniform in 0-9.

    secrets.randbelow draws from the OS CSPRNG. Leading zeros are kept, so
    "00042" is a valid code.
    """
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(email: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT whose subject is the user's email.

    Args:
        email:          Subject claim. Request authentication looks the user
                        up by this value.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Expired tokens, bad signatures and tokens without a subject all come back
    as None.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
