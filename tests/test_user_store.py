"""
tests/test_user_store.py -- Unit tests for UserStore (auth/store.py).

Coverage:
  - create/get round trip, timestamps populated
  - Unique constraints: username, email (case-insensitive), (provider, provider_id)
  - Multiple LOCAL users without provider_id coexist
  - update_user: mutable fields only, updated_at advances, None for unknown user
  - Refresh hash: set/clear and compare-and-swap semantics
  - delete_user, list_users ordering, ping
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import AuthProvider, User
from auth.store import UserStore


def _user(username: str = "neo", email: str = "neo@matrix.io", **kwargs) -> User:
    return User(username=username, email=email, name=username.title(), **kwargs)


class TestCreateAndGet:
    def test_round_trip(self, store: UserStore) -> None:
        created = store.create_user(_user(password_hash="$2b$04$hash"))
        assert created.username == "neo"
        assert created.provider is AuthProvider.LOCAL
        assert created.created_at is not None
        assert created.updated_at is not None
        assert store.get_by_username("neo") == created
        assert store.get_by_email("neo@matrix.io") == created

    def test_missing_user_is_none(self, store: UserStore) -> None:
        assert store.get_by_username("ghost") is None
        assert store.get_by_email("ghost@x.com") is None
        assert store.get_by_provider(AuthProvider.GOOGLE, "123") is None

    def test_get_by_provider(self, store: UserStore) -> None:
        store.create_user(_user(provider=AuthProvider.GOOGLE, provider_id="g-1"))
        found = store.get_by_provider(AuthProvider.GOOGLE, "g-1")
        assert found is not None and found.username == "neo"

    def test_username_exists(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.username_exists("neo")
        assert not store.username_exists("trinity")


class TestUniqueness:
    def test_duplicate_username(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(IntegrityError):
            store.create_user(_user(email="other@matrix.io"))

    def test_duplicate_email(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(IntegrityError):
            store.create_user(_user(username="neo2"))

    def test_email_is_case_insensitive(self, store: UserStore) -> None:
        store.create_user(_user(email="Neo@Matrix.io"))
        assert store.get_by_email("neo@matrix.io").username == "neo"
        assert store.get_by_email("NEO@MATRIX.IO").email == "neo@matrix.io"
        with pytest.raises(IntegrityError):
            store.create_user(_user(username="neo2", email="neo@MATRIX.io"))

    def test_duplicate_provider_identity(self, store: UserStore) -> None:
        store.create_user(_user(provider=AuthProvider.GOOGLE, provider_id="g-1"))
        with pytest.raises(IntegrityError):
            store.create_user(
                _user(username="other", email="other@x.com", provider=AuthProvider.GOOGLE, provider_id="g-1")
            )

    def test_local_users_without_provider_id_coexist(self, store: UserStore) -> None:
        store.create_user(_user("neo", "neo@matrix.io"))
        store.create_user(_user("trinity", "trinity@matrix.io"))
        assert [u.username for u in store.list_users()] == ["neo", "trinity"]

    def test_find_by_username_or_email(self, store: UserStore) -> None:
        store.create_user(_user("neo", "neo@matrix.io"))
        store.create_user(_user("trinity", "trinity@matrix.io"))
        found = store.find_by_username_or_email("neo", "trinity@matrix.io")
        assert sorted(u.username for u in found) == ["neo", "trinity"]


class TestUpdate:
    def test_update_mutable_fields(self, store: UserStore) -> None:
        created = store.create_user(_user())
        updated = store.update_user("neo", name="Thomas Anderson", image="http://img/neo.png")
        assert updated.name == "Thomas Anderson"
        assert updated.image == "http://img/neo.png"
        assert updated.created_at == created.created_at
        assert updated.updated_at >= created.updated_at

    def test_username_is_immutable(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(ValueError, match="username"):
            store.update_user("neo", username="the_one")
        assert store.get_by_username("neo") is not None

    def test_unknown_user_returns_none(self, store: UserStore) -> None:
        assert store.update_user("ghost", name="Nobody") is None


class TestRefreshHash:
    def test_set_and_clear(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.set_refresh_token_hash("neo", "h1")
        assert store.get_by_username("neo").hashed_refresh_token == "h1"
        assert store.set_refresh_token_hash("neo", None)
        assert store.get_by_username("neo").hashed_refresh_token is None

    def test_swap_succeeds_when_expected_matches(self, store: UserStore) -> None:
        store.create_user(_user(hashed_refresh_token="h1"))
        assert store.swap_refresh_token_hash("neo", "h1", "h2")
        assert store.get_by_username("neo").hashed_refresh_token == "h2"

    def test_second_swap_with_same_expected_loses(self, store: UserStore) -> None:
        """Two refreshes that both verified h1: only the first may rotate."""
        store.create_user(_user(hashed_refresh_token="h1"))
        assert store.swap_refresh_token_hash("neo", "h1", "h2")
        assert not store.swap_refresh_token_hash("neo", "h1", "h3")
        assert store.get_by_username("neo").hashed_refresh_token == "h2"

    def test_swap_after_logout_loses(self, store: UserStore) -> None:
        store.create_user(_user(hashed_refresh_token="h1"))
        store.set_refresh_token_hash("neo", None)
        assert not store.swap_refresh_token_hash("neo", "h1", "h2")


class TestDeleteAndPing:
    def test_delete(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.delete_user("neo")
        assert store.get_by_username("neo") is None
        assert not store.delete_user("neo")

    def test_ping(self, store: UserStore) -> None:
        assert store.ping() is True
