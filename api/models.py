"""
API request and response models for ChefFlow REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models reject malformed input before it reaches the session service.
Response models are explicit whitelists: a field that is not declared here is
never emitted, so password and refresh-token hashes cannot leak through a
response. JSON keys are camelCase for the browser frontend.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from auth.models import AuthProvider, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"

# Clients send SHA-256(password) as 64 hex chars; the server bcrypts that.
PASSWORD_DIGEST_PATTERN = r"^[a-fA-F0-9]{64}$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=8, max_length=100, pattern=PASSWORD_DIGEST_PATTERN)
    name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3)
    password: str = Field(min_length=8, max_length=100, pattern=PASSWORD_DIGEST_PATTERN)


class UserUpdate(BaseModel):
    """Request body for PATCH /users/{username}. Username itself is immutable."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    email: Optional[EmailStr] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    image: Optional[str] = Field(default=None, max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(_CamelModel):
    """Public view of a user."""

    username: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    provider: AuthProvider
    provider_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build the response from the domain User, copying whitelisted fields only."""
        return cls(
            username=user.username,
            email=user.email,
            name=user.name,
            image=user.image,
            provider=user.provider,
            provider_id=user.provider_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthUserResponse(_CamelModel):
    """Response for register and login. Tokens travel in cookies, not the body."""

    user: UserResponse


class MessageResponse(_CamelModel):
    message: str


class CsrfResponse(_CamelModel):
    csrf_token: str


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


class HealthResponse(_CamelModel):
    """Response for GET /health."""

    status: str = "ok"
    timestamp: str


class ReadyResponse(_CamelModel):
    """Response for GET /ready."""

    status: str
    database: str
    timestamp: str
