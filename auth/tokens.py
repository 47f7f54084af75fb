"""
auth/tokens.py -- Password hashing and JWT issuance/verification.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper), work factor 10 by default.
       The cost factor makes brute force expensive; the per-call salt makes
       two hashes of the same password differ. The _DUMMY_HASH constant
       enables timing equalization at login so response time does not reveal
       whether a username exists [C1].

  Refresh tokens: stored as bcrypt digests, never in clear. A JWT is longer
       than bcrypt's 72-byte input limit and its first 72 bytes are mostly the
       constant header, so the token is reduced to its SHA-256 hex digest
       (64 bytes) before bcrypt. Every byte of the token stays significant.

  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       independent secrets, so a leaked access secret cannot mint refresh
       tokens. Every token carries a random jti: two tokens issued in the same
       second for the same user still differ, which rotation relies on.

Layer rule: no imports from api/. Secrets are passed in by the caller
(TokenIssuer is built from Settings at startup), never read here.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import HashingError, TokenInvalidError
from auth.models import TokenPair

logger = logging.getLogger("chefflow.auth.tokens")

BCRYPT_ROUNDS = 10

ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_TTL = timedelta(days=7)

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "username")

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext.

    Raises HashingError if the input cannot be hashed (not a string, or
    rejected by bcrypt, e.g. longer than 72 bytes on bcrypt >= 5).
    """
    if not isinstance(plain, str):
        raise HashingError(f"cannot hash value of type {type(plain).__name__}")
    try:
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")
    except ValueError as exc:
        raise HashingError(str(exc)) from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the bcrypt hash.

    Never raises: a malformed digest or input is simply a mismatch.
    bcrypt.checkpw does the comparison in constant time.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (AttributeError, TypeError, ValueError):
        return False


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_refresh_token(token: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Return the bcrypt digest stored in users.hashed_refresh_token."""
    if not isinstance(token, str):
        raise HashingError(f"cannot hash value of type {type(token).__name__}")
    return hash_password(_token_digest(token), rounds=rounds)


def verify_refresh_token_hash(token: str, hashed: str) -> bool:
    if not isinstance(token, str):
        return False
    return verify_password(_token_digest(token), hashed)


# Timing equalization dummy hash [C1].
# Computed once at module load. Always call verify_password() even when the
# username does not exist or the account has no password.
_DUMMY_HASH: str = hash_password("chefflow_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Burn one bcrypt verification so failed lookups cost as much as a real check."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def verify_token(token: str, secret: str) -> dict:
    """Decode and verify a JWT signed with `secret`.

    Raises TokenInvalidError on bad signature, malformed token, expiry, or a
    payload missing the sub/username claims.
    """
    if not token:
        raise TokenInvalidError("empty token")
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError as exc:
        raise TokenInvalidError(str(exc)) from exc
    if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS):
        raise TokenInvalidError("token is missing required claims")
    return payload


class TokenIssuer:
    """Creates and verifies the two token classes.

    Usage:
        issuer = TokenIssuer(settings.jwt_access_secret, settings.jwt_refresh_secret)
        pair = issuer.issue_pair("neo", "neo")
        claims = issuer.verify_access_token(pair.access_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = ACCESS_TOKEN_TTL,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("both token secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings) -> "TokenIssuer":
        return cls(settings.jwt_access_secret, settings.jwt_refresh_secret)

    def _sign(self, subject: str, username: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "username": username,
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, secret, algorithm=_ALGORITHM)

    def issue_access_token(self, subject: str, username: str) -> str:
        return self._sign(subject, username, self._access_secret, self.access_ttl)

    def issue_refresh_token(self, subject: str, username: str) -> str:
        return self._sign(subject, username, self._refresh_secret, self.refresh_ttl)

    def issue_pair(self, subject: str, username: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(subject, username),
            refresh_token=self.issue_refresh_token(subject, username),
        )

    def verify_access_token(self, token: str) -> dict:
        return verify_token(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> dict:
        return verify_token(token, self._refresh_secret)
