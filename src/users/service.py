"""Account registration, authentication and profile management."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.access.policy import Capability, can_edit_profile, can_manage_users, require
from src.auth.identity import Identity
from src.core.errors import Conflict, NotFound, Unauthenticated, ValidationError
from src.core.logger import get_logger
from src.storage.db import commit_or_unknown
from src.storage.models import ROLE_ADMIN, ROLE_BASIC, ROLES, SessionRequest, User, utcnow
from src.storage.security import hash_password, verify_password


logger = get_logger("talkboard.users")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _clean_display_name(display_name: str) -> str:
    cleaned = display_name.strip()
    if not cleaned:
        raise ValidationError("Display name must not be empty")
    return cleaned


def register_user(session: Session, *, email: str, password: str, display_name: str) -> User:
    """Create a basic account; the first account on a fresh install becomes admin."""

    normalized_email = _normalize_email(email)
    existing = session.scalar(select(User).where(User.email == normalized_email))
    if existing is not None:
        raise Conflict("An account with this email already exists", refetch=False)

    user_count = session.scalar(select(func.count()).select_from(User)) or 0
    role = ROLE_ADMIN if user_count == 0 else ROLE_BASIC

    user = User(
        email=normalized_email,
        display_name=_clean_display_name(display_name),
        role=role,
        password_hash=hash_password(password),
    )
    session.add(user)
    try:
        commit_or_unknown(session, action="register_user")
    except IntegrityError as exc:
        raise Conflict("An account with this email already exists", refetch=False) from exc

    logger.info("user_registered", user_id=user.id, role=role)
    return user


def authenticate_user(session: Session, *, email: str, password: str) -> User:
    user = session.scalar(select(User).where(User.email == _normalize_email(email)))
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return user


def get_user(session: Session, user_id: str) -> User:
    user = session.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFound("User not found")
    return user


def list_users(session: Session, identity: Identity, *, role: Optional[str] = None) -> List[User]:
    require(
        can_manage_users(identity),
        capability=Capability.MANAGE_USERS,
        identity=identity,
        detail="Only admins can list accounts",
    )
    statement = select(User).order_by(User.display_name.asc())
    if role is not None:
        if role not in ROLES:
            raise ValidationError(f"Unknown role filter: {role}")
        statement = statement.where(User.role == role)
    return list(session.scalars(statement).all())


def list_directory(session: Session) -> List[User]:
    """Id/name directory used when picking guests for a private session."""

    return list(session.scalars(select(User).order_by(User.display_name.asc())).all())


def update_user(
    session: Session,
    identity: Identity,
    user_id: str,
    *,
    display_name: Optional[str] = None,
    role: Optional[str] = None,
) -> User:
    user = get_user(session, user_id)
    require(
        can_edit_profile(identity, user_id),
        capability=Capability.EDIT_PROFILE,
        identity=identity,
        detail="You can only edit your own profile",
        target_user_id=user_id,
    )

    if role is not None and role != user.role:
        require(
            can_manage_users(identity),
            capability=Capability.MANAGE_USERS,
            identity=identity,
            detail="Only admins can change roles",
            target_user_id=user_id,
        )
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role}")
        logger.info("user_role_changed", target_user_id=user_id, old_role=user.role, new_role=role)
        user.role = role

    if display_name is not None:
        user.display_name = _clean_display_name(display_name)

    user.updated_at = utcnow()
    commit_or_unknown(session, action="update_user")
    return user


def delete_user(session: Session, identity: Identity, user_id: str) -> None:
    require(
        can_manage_users(identity),
        capability=Capability.MANAGE_USERS,
        identity=identity,
        detail="Only admins can remove accounts",
        target_user_id=user_id,
    )
    if user_id == identity.id:
        raise ValidationError("Admins cannot remove their own account")

    user = get_user(session, user_id)
    # Session requests are kept for audit and name their requester and reviewer.
    referenced = session.scalar(
        select(SessionRequest.id)
        .where(or_(SessionRequest.requester_id == user_id, SessionRequest.reviewer_id == user_id))
        .limit(1)
    )
    if referenced is not None:
        raise Conflict("Account is referenced by session requests and cannot be removed", refetch=False)

    session.delete(user)
    try:
        commit_or_unknown(session, action="delete_user")
    except IntegrityError as exc:
        raise Conflict("Account is referenced by session requests and cannot be removed", refetch=False) from exc
    logger.info("user_removed", target_user_id=user_id, actor_id=identity.id)
