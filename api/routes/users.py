"""
api/routes/users.py -- User profile endpoints.

Routes (all require an access token; the router is included with
get_current_user as a router-level dependency in api/main.py):
  GET    /users/me            -- current user
  GET    /users               -- list users
  GET    /users/{username}    -- one user, 404 if missing
  PATCH  /users/{username}    -- update own name/email/image
  DELETE /users/{username}    -- delete own account

Ownership: PATCH and DELETE go through require_owner(); a user can only
modify their own record. The username itself is immutable.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import UserResponse, UserUpdate
from auth.dependencies import get_current_user, require_owner
from auth.errors import ConflictError, NotFoundError
from auth.models import User
from auth.store import UserStore

logger = logging.getLogger("chefflow.api.users")

router = APIRouter(prefix="/users")


def _store(request: Request) -> UserStore:
    return request.app.state.session_service.store


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(current_user)


@router.get("", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _store(request).list_users()]


@router.get("/{username}", response_model=UserResponse)
def get_user(request: Request, username: str) -> UserResponse:
    user = _store(request).get_by_username(username)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.from_user(user)


@router.patch("/{username}", response_model=UserResponse)
def update_user(
    request: Request,
    username: str,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update the caller's own profile. Email must stay unique (409 otherwise)."""
    require_owner(current_user, username, "You can only update your own profile")

    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    store = _store(request)
    if not updates:
        return UserResponse.from_user(current_user)

    if "email" in updates:
        holder = store.get_by_email(updates["email"])
        if holder is not None and holder.username != username:
            raise ConflictError("Email already exists")

    try:
        updated = store.update_user(username, **updates)
    except IntegrityError as exc:
        raise ConflictError("Email already exists") from exc
    if updated is None:
        raise NotFoundError("User not found")
    return UserResponse.from_user(updated)


@router.delete("/{username}", status_code=204)
def delete_user(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_user),
) -> Response:
    """Permanently delete the caller's own account."""
    require_owner(current_user, username, "You can only delete your own account")
    if not _store(request).delete_user(username):
        raise NotFoundError("User not found")
    logger.info("User %r deleted their account", username)
    return Response(status_code=204)
