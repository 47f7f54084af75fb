"""
auth/identity.py -- Reconcile an external OAuth profile with a local user.

Resolution order, per login attempt:
  1. (provider, provider_id) match  -> EXISTING_OAUTH, user returned unchanged.
  2. email match                    -> LINKED, provider fields written onto the
                                       existing account; password hash kept.
  3. otherwise                      -> CREATED, new OAuth-only account with a
                                       username derived from the email.

Provider identity is checked before email so a returning user whose email
changed at the provider is neither duplicated nor re-linked.

Username derivation probes base, base1, base2, ... up to MAX_USERNAME_PROBES
candidates, then switches to random hex suffixes so a crowded namespace cannot
turn one login into an unbounded loop.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError

from auth.errors import InternalError
from auth.models import OAuthUserData, User
from auth.store import UserStore

logger = logging.getLogger("chefflow.auth.identity")

MAX_USERNAME_PROBES = 1000
MAX_RANDOM_SUFFIX_ATTEMPTS = 5

_INVALID_USERNAME_CHARS = re.compile(r"[^a-z0-9_]")


class ResolutionOutcome(str, Enum):
    EXISTING_OAUTH = "EXISTING_OAUTH"
    LINKED = "LINKED"
    CREATED = "CREATED"


@dataclass(frozen=True)
class Resolution:
    user: User
    outcome: ResolutionOutcome


def derive_base_username(email: str) -> str:
    """Lower-cased email local part with every char outside [a-z0-9_] replaced by '_'.

    >>> derive_base_username("a.b+c@x.com")
    'a_b_c'
    """
    local_part = email.split("@")[0]
    return _INVALID_USERNAME_CHARS.sub("_", local_part.lower())


def find_available_username(
    store: UserStore,
    base: str,
    max_probes: int = MAX_USERNAME_PROBES,
) -> str:
    """Return the first unused username among base, base1, base2, ...

    After max_probes sequential candidates, tries base_<8 hex chars> a few
    times and gives up with InternalError.
    """
    for counter in range(max_probes):
        candidate = base if counter == 0 else f"{base}{counter}"
        if not store.username_exists(candidate):
            return candidate

    for _ in range(MAX_RANDOM_SUFFIX_ATTEMPTS):
        candidate = f"{base}_{secrets.token_hex(4)}"
        if not store.username_exists(candidate):
            return candidate

    raise InternalError("Could not allocate a username")


def resolve_oauth_identity(store: UserStore, data: OAuthUserData) -> Resolution:
    """Find, link, or create the local user for an OAuth profile."""
    user = store.get_by_provider(data.provider, data.provider_id)
    if user is not None:
        return Resolution(user, ResolutionOutcome.EXISTING_OAUTH)

    existing = store.get_by_email(data.email)
    if existing is not None:
        linked = store.update_user(
            existing.username,
            provider=data.provider,
            provider_id=data.provider_id,
            image=data.image or existing.image,
        )
        if linked is None:
            # Deleted between the two statements.
            raise InternalError("Failed to link OAuth account")
        logger.info("Linked %s identity to existing user %r", data.provider.value, linked.username)
        return Resolution(linked, ResolutionOutcome.LINKED)

    username = find_available_username(store, derive_base_username(data.email))
    local_part = data.email.split("@")[0]
    try:
        created = store.create_user(
            User(
                username=username,
                email=data.email,
                name=data.name or local_part,
                image=data.image,
                provider=data.provider,
                provider_id=data.provider_id,
                password_hash=None,
            )
        )
    except IntegrityError as exc:
        # A concurrent callback for the same identity or username won the insert.
        raise InternalError("Failed to create OAuth user") from exc
    logger.info("Created %s user %r", data.provider.value, created.username)
    return Resolution(created, ResolutionOutcome.CREATED)
