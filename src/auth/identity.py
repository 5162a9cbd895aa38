"""Resolve the acting user from token claims plus the stored profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.auth.jwt import TokenClaims
from src.core.errors import Unauthenticated
from src.storage.models import User


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    display_name: str
    role: str


def identity_from_user(user: User) -> Identity:
    return Identity(id=user.id, email=user.email, display_name=user.display_name, role=user.role)


def resolve_identity(session: Session, claims: Optional[TokenClaims]) -> Identity:
    """Return the caller's identity, re-reading role and profile on every call.

    The token only proves who the caller is; what they may do comes from the
    stored profile so that a role change or account removal applies to the very
    next request.
    """

    if claims is None:
        raise Unauthenticated("Authentication required")

    user = session.scalar(select(User).where(User.id == claims.user_id))
    if user is None:
        raise Unauthenticated("Account no longer exists")
    return identity_from_user(user)
