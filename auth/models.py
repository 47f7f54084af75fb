"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the session
service and routes do the work; these classes own the domain shape. The same
User type is used end to end -- rows are mapped into it at the store boundary
and API responses are shaped from it by an explicit whitelist in api/models.py.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthProvider(str, Enum):
    """Origin of a user's credentials."""

    LOCAL = "LOCAL"
    GOOGLE = "GOOGLE"


@dataclass
class User:
    """Represents an identity in ChefFlow.

    username is the primary key and the JWT subject. It never changes once set.

    password_hash is None for OAuth-only users. A LOCAL user later linked to
    Google keeps its password hash, so both login paths keep working.

    hashed_refresh_token holds the bcrypt digest of the single active refresh
    token. None means the user is logged out.
    """

    username: str
    email: str
    name: str | None = None
    image: str | None = None
    password_hash: str | None = None
    hashed_refresh_token: str | None = None
    provider: AuthProvider = AuthProvider.LOCAL
    provider_id: str | None = None  # provider's stable subject id
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class OAuthUserData:
    """Normalized profile handed to the identity resolver after an OAuth login."""

    provider: AuthProvider
    provider_id: str
    email: str
    name: str | None = None
    image: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful register/login: fresh tokens plus the user."""

    access_token: str
    refresh_token: str
    user: User

    @property
    def tokens(self) -> TokenPair:
        return TokenPair(self.access_token, self.refresh_token)


@dataclass(frozen=True)
class RefreshCredentials:
    """What the refresh gate attaches to a request: who, and which token."""

    username: str
    refresh_token: str
