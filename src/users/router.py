"""Profile API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from src.auth.dependencies import require_identity
from src.auth.identity import Identity
from src.schemas.users import (
    DirectoryEntry,
    DirectoryResponse,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from src.storage.db import get_session
from src.storage.models import User, isoformat
from src.users.service import delete_user, get_user, list_directory, list_users, update_user


router = APIRouter(prefix="/users", tags=["users"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        created_at=isoformat(user.created_at),
    )


@router.get("/me", response_model=UserResponse)
def read_me(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> UserResponse:
    return _user_response(get_user(session, identity.id))


@router.get("/directory", response_model=DirectoryResponse)
def read_directory(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> DirectoryResponse:
    users = list_directory(session)
    return DirectoryResponse(
        items=[DirectoryEntry(id=user.id, display_name=user.display_name) for user in users],
        count=len(users),
    )


@router.get("", response_model=UserListResponse)
def read_users(
    role: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> UserListResponse:
    users = list_users(session, identity, role=role)
    return UserListResponse(items=[_user_response(user) for user in users], count=len(users))


@router.patch("/{user_id}", response_model=UserResponse)
def patch_user(
    user_id: str,
    payload: UserUpdateRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> UserResponse:
    user = update_user(
        session,
        identity,
        user_id,
        display_name=payload.display_name,
        role=payload.role,
    )
    return _user_response(user)


@router.delete("/{user_id}", status_code=204)
def remove_user(
    user_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> Response:
    delete_user(session, identity, user_id)
    return Response(status_code=204)
