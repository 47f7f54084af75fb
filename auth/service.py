"""
auth/service.py -- Session orchestration: register, login, refresh, logout.

SessionService owns the refresh-token rotation invariant: a user has exactly
one active refresh token, stored as a bcrypt digest; every successful login,
registration, refresh or OAuth login replaces it, and logout clears it. A
refresh token is therefore single-use -- presenting it again after rotation
fails.

Error contract:
  ConflictError / UnauthorizedError / ForbiddenError propagate verbatim.
  Anything else raised inside an operation (database down, hashing failure)
  is logged and re-raised as InternalError with a generic message so internal
  details never reach the client.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import functools
import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthError, ConflictError, ForbiddenError, InternalError, UnauthorizedError
from auth.models import AuthProvider, AuthResult, TokenPair, User
from auth.store import UserStore
from auth.tokens import (
    BCRYPT_ROUNDS,
    TokenIssuer,
    equalize_timing,
    hash_password,
    hash_refresh_token,
    verify_password,
    verify_refresh_token_hash,
)

logger = logging.getLogger("chefflow.auth.service")


def _internal_on_failure(message: str):
    """Let AuthError through; convert every other exception into InternalError(message)."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except AuthError:
                raise
            except Exception as exc:
                logger.exception("%s failed", func.__name__)
                raise InternalError(message) from exc

        return wrapper

    return decorator


class SessionService:
    """Register/login/refresh/logout on top of the user store and token issuer.

    Usage:
        service = SessionService(UserStore(url), TokenIssuer(access, refresh))
        result = service.register("neo", "neo@matrix.io", pw_sha256, "Neo")
        pair = service.refresh("neo", result.refresh_token)
    """

    def __init__(self, store: UserStore, issuer: TokenIssuer, bcrypt_rounds: int = BCRYPT_ROUNDS) -> None:
        self.store = store
        self.issuer = issuer
        self.bcrypt_rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @_internal_on_failure("Failed to register user")
    def register(self, username: str, email: str, password: str, name: str) -> AuthResult:
        """Create a LOCAL user and open its first session.

        Username collisions are reported before email collisions.
        """
        existing = self.store.find_by_username_or_email(username, email)
        if any(u.username == username for u in existing):
            raise ConflictError("Username already exists")
        if existing:
            raise ConflictError("Email already exists")

        user = User(
            username=username,
            email=email,
            name=name,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            provider=AuthProvider.LOCAL,
        )
        try:
            user = self.store.create_user(user)
        except IntegrityError as exc:
            raise ConflictError("Username or email already exists") from exc

        tokens = self._open_session(user)
        logger.info("Registered user %r", user.username)
        return AuthResult(tokens.access_token, tokens.refresh_token, user)

    @_internal_on_failure("Failed to login")
    def login(self, username: str, password: str) -> AuthResult:
        """Authenticate with username and password.

        Unknown user, OAuth-only account and wrong password are one and the
        same failure to the caller. bcrypt runs in every branch [C1].
        """
        user = self.store.get_by_username(username)
        if user is None or user.password_hash is None:
            equalize_timing(password)
            logger.info("Login rejected for %r", username)
            raise UnauthorizedError("Invalid credentials")
        if not verify_password(password, user.password_hash):
            logger.info("Login rejected for %r", username)
            raise UnauthorizedError("Invalid credentials")

        tokens = self._open_session(user)
        return AuthResult(tokens.access_token, tokens.refresh_token, user)

    @_internal_on_failure("Failed to refresh tokens")
    def refresh(self, username: str, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a brand-new pair.

        The stored hash is swapped only if it is still the one just verified,
        so two concurrent refreshes with the same token cannot both succeed.
        """
        user = self.store.get_by_username(username)
        if user is None or user.hashed_refresh_token is None:
            raise ForbiddenError("Access Denied")
        if not verify_refresh_token_hash(refresh_token, user.hashed_refresh_token):
            logger.warning("Refresh token mismatch for %r (reused or revoked)", username)
            raise ForbiddenError("Access Denied")

        tokens = self.issuer.issue_pair(user.username, user.username)
        new_hash = hash_refresh_token(tokens.refresh_token, rounds=self.bcrypt_rounds)
        if not self.store.swap_refresh_token_hash(user.username, user.hashed_refresh_token, new_hash):
            logger.warning("Concurrent refresh lost the rotation race for %r", username)
            raise ForbiddenError("Access Denied")
        return tokens

    @_internal_on_failure("Failed to logout")
    def logout(self, username: str) -> None:
        """Revoke the active refresh token. Idempotent; unknown users are a no-op."""
        self.store.set_refresh_token_hash(username, None)

    @_internal_on_failure("Failed to login")
    def login_with_oauth(self, user: User) -> AuthResult:
        """Open a session for a user already identified by the OAuth resolver."""
        tokens = self._open_session(user)
        return AuthResult(tokens.access_token, tokens.refresh_token, user)

    def validate_user(self, username: str) -> User | None:
        return self.store.get_by_username(username)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_session(self, user: User) -> TokenPair:
        """Issue a pair and make its refresh token the only valid one."""
        tokens = self.issuer.issue_pair(user.username, user.username)
        hashed = hash_refresh_token(tokens.refresh_token, rounds=self.bcrypt_rounds)
        self.store.set_refresh_token_hash(user.username, hashed)
        user.hashed_refresh_token = hashed
        return tokens
