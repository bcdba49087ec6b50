"""
API request and response models for ProConnect REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
The response side never carries password or token hashes.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator

from auth.models import User

# bcrypt rejects secrets longer than 72 bytes. The limit is on the UTF-8
# encoding, so a short string of multi-byte characters can exceed it.
PASSWORD_MAX_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


# Passwords are taken verbatim: surrounding whitespace is part of the secret.
Password = Annotated[str, StringConstraints(min_length=1), AfterValidator(_check_password_bytes)]

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AuthenticationRequest(BaseModel):
    """Request body for POST /authentication/login and /authentication/register."""

    email: EmailStr
    password: Password

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value


class ProfileUpdate(BaseModel):
    """Request body for PUT /authentication/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    company: Optional[str] = Field(default=None, min_length=1, max_length=255)
    position: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AuthenticationResponse(BaseModel):
    """Response for login and register: a session token and a status message."""

    model_config = ConfigDict(frozen=True)

    token: str
    message: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class UserResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    email_verified: bool
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    location: Optional[str] = None
    profile_complete: bool
    created_at: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from an auth User, dropping every secret field."""
        return cls(
            id=user.id,
            email=user.email,
            email_verified=user.email_verified,
            first_name=user.first_name,
            last_name=user.last_name,
            company=user.company,
            position=user.position,
            location=user.location,
            profile_complete=user.profile_complete,
            created_at=user.created_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
