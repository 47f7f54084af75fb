"""
tests/test_identity.py -- Unit tests for OAuth identity resolution.

Coverage:
  - derive_base_username: lower-casing and character replacement
  - find_available_username: base, then base1, base2, ...; random fallback
  - resolve_oauth_identity: EXISTING_OAUTH / LINKED / CREATED branches,
    idempotence, case-insensitive email link, image preservation, name
    fallback, password kept on link
  - profile_from_userinfo: claim normalization and rejection rules
"""

from __future__ import annotations

import pytest

from auth.errors import InternalError
from auth.identity import (
    ResolutionOutcome,
    derive_base_username,
    find_available_username,
    resolve_oauth_identity,
)
from auth.models import AuthProvider, OAuthUserData, User
from auth.oauth import profile_from_userinfo
from auth.store import UserStore


def _google(email: str = "alice@x.com", sub: str = "g-alice", name: str | None = "Alice A", image=None):
    return OAuthUserData(provider=AuthProvider.GOOGLE, provider_id=sub, email=email, name=name, image=image)


class TestUsernameDerivation:
    @pytest.mark.parametrize(
        ("email", "expected"),
        [
            ("a.b+c@x.com", "a_b_c"),
            ("Alice@x.com", "alice"),
            ("bob_99@x.com", "bob_99"),
            ("jean-luc@x.com", "jean_luc"),
        ],
    )
    def test_derive_base_username(self, email: str, expected: str) -> None:
        assert derive_base_username(email) == expected

    def test_first_free_suffix(self, store: UserStore) -> None:
        store.create_user(User(username="bob", email="bob@a.com"))
        store.create_user(User(username="bob1", email="bob@b.com"))
        assert find_available_username(store, "bob") == "bob2"

    def test_base_used_when_free(self, store: UserStore) -> None:
        assert find_available_username(store, "carol") == "carol"

    def test_random_suffix_after_probe_limit(self, store: UserStore) -> None:
        store.create_user(User(username="dave", email="dave@a.com"))
        store.create_user(User(username="dave1", email="dave@b.com"))
        name = find_available_username(store, "dave", max_probes=2)
        assert name.startswith("dave_")
        assert len(name) == len("dave_") + 8

    def test_gives_up_with_internal_error(self, store: UserStore, monkeypatch) -> None:
        monkeypatch.setattr(store, "username_exists", lambda _name: True)
        with pytest.raises(InternalError):
            find_available_username(store, "eve", max_probes=3)


class TestResolveOAuthIdentity:
    def test_creates_new_user(self, store: UserStore) -> None:
        resolution = resolve_oauth_identity(store, _google(image="http://img/a.png"))
        user = resolution.user
        assert resolution.outcome is ResolutionOutcome.CREATED
        assert user.username == "alice"
        assert user.provider is AuthProvider.GOOGLE
        assert user.provider_id == "g-alice"
        assert user.password_hash is None
        assert user.image == "http://img/a.png"

    def test_idempotent_for_same_identity(self, store: UserStore) -> None:
        first = resolve_oauth_identity(store, _google())
        second = resolve_oauth_identity(store, _google())
        assert second.outcome is ResolutionOutcome.EXISTING_OAUTH
        assert second.user.username == first.user.username
        assert len(store.list_users()) == 1

    def test_provider_match_wins_over_changed_email(self, store: UserStore) -> None:
        resolve_oauth_identity(store, _google())
        again = resolve_oauth_identity(store, _google(email="alice.new@x.com"))
        assert again.outcome is ResolutionOutcome.EXISTING_OAUTH
        assert again.user.email == "alice@x.com"

    def test_links_existing_local_account_by_email(self, store: UserStore) -> None:
        store.create_user(
            User(username="alice", email="alice@x.com", name="Alice", password_hash="$2b$04$keep", image="old.png")
        )
        resolution = resolve_oauth_identity(store, _google(image=None))
        user = resolution.user
        assert resolution.outcome is ResolutionOutcome.LINKED
        assert user.username == "alice"
        assert user.provider is AuthProvider.GOOGLE
        assert user.provider_id == "g-alice"
        assert user.password_hash == "$2b$04$keep"
        assert user.image == "old.png"
        assert len(store.list_users()) == 1

    def test_links_when_email_case_differs(self, store: UserStore) -> None:
        store.create_user(User(username="alice", email="alice@example.com", password_hash="$2b$04$keep"))
        resolution = resolve_oauth_identity(store, _google(email="Alice@Example.com"))
        assert resolution.outcome is ResolutionOutcome.LINKED
        assert resolution.user.username == "alice"
        assert [u.username for u in store.list_users()] == ["alice"]

    def test_link_replaces_image_when_provider_sends_one(self, store: UserStore) -> None:
        store.create_user(User(username="alice", email="alice@x.com", image="old.png"))
        user = resolve_oauth_identity(store, _google(image="new.png")).user
        assert user.image == "new.png"

    def test_created_username_avoids_collisions(self, store: UserStore) -> None:
        store.create_user(User(username="bob", email="bob@a.com"))
        store.create_user(User(username="bob1", email="bob@b.com"))
        user = resolve_oauth_identity(store, _google(email="bob@x.com", sub="g-bob")).user
        assert user.username == "bob2"

    def test_name_falls_back_to_email_local_part(self, store: UserStore) -> None:
        user = resolve_oauth_identity(store, _google(email="a.b+c@x.com", name=None)).user
        assert user.username == "a_b_c"
        assert user.name == "a.b+c"


class TestProfileFromUserinfo:
    def test_given_and_family_name(self) -> None:
        data = profile_from_userinfo(
            {
                "sub": "123",
                "email": "alice@x.com",
                "email_verified": True,
                "given_name": "Alice",
                "family_name": "Liddell",
                "name": "ignored",
                "picture": "http://img/a.png",
            }
        )
        assert data.provider is AuthProvider.GOOGLE
        assert data.provider_id == "123"
        assert data.name == "Alice Liddell"
        assert data.image == "http://img/a.png"

    def test_name_claim_used_without_family_name(self) -> None:
        data = profile_from_userinfo({"sub": "1", "email": "a@x.com", "given_name": "Alice", "name": "Alice L"})
        assert data.name == "Alice L"

    def test_missing_email_rejected(self) -> None:
        with pytest.raises(ValueError, match="No email provided by Google"):
            profile_from_userinfo({"sub": "1"})

    def test_unverified_email_rejected(self) -> None:
        with pytest.raises(ValueError, match="Email not verified by Google"):
            profile_from_userinfo({"sub": "1", "email": "a@x.com", "email_verified": False})

    def test_absent_verified_flag_accepted(self) -> None:
        assert profile_from_userinfo({"sub": "1", "email": "a@x.com"}).email == "a@x.com"

    def test_missing_userinfo_rejected(self) -> None:
        with pytest.raises(ValueError):
            profile_from_userinfo(None)

    def test_missing_subject_rejected(self) -> None:
        with pytest.raises(ValueError):
            profile_from_userinfo({"email": "a@x.com"})
