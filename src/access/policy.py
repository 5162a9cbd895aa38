"""Access policy: the single place that decides who may do what.

Every role comparison in the engine goes through the predicates below. They are
pure functions over an identity and freshly loaded rows; callers evaluate them
immediately before each mutation and never cache the outcome.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Protocol

from src.auth.identity import Identity
from src.core.errors import Forbidden
from src.core.logger import get_logger
from src.core.metrics import record_access_denied
from src.session_requests.states import REQUEST_STATUS_APPROVED
from src.storage.models import ROLE_ADMIN, ROLE_BASIC, ROLE_PLANNER, VISIBILITY_PUBLIC


PRIVILEGED_ROLES = frozenset({ROLE_ADMIN, ROLE_PLANNER})

logger = get_logger("talkboard.access")


class Capability(str, Enum):
    VIEW_SESSION = "view_session"
    EDIT_SESSION = "edit_session"
    DELETE_SESSION = "delete_session"
    CREATE_SESSION = "create_session"
    REVIEW_REQUEST = "review_request"
    MATERIALIZE_REQUEST = "materialize_request"
    EDIT_COMMENT = "edit_comment"
    EDIT_PROFILE = "edit_profile"
    MANAGE_USERS = "manage_users"


class SessionLike(Protocol):
    visibility: str
    owner_id: str


class RequestLike(Protocol):
    status: str
    requester_id: str


def is_privileged(identity: Identity) -> bool:
    return identity.role in PRIVILEGED_ROLES


def is_admin(identity: Identity) -> bool:
    return identity.role == ROLE_ADMIN


def can_view(identity: Identity, session: SessionLike, guest_ids: Iterable[str]) -> bool:
    return (
        is_privileged(identity)
        or session.visibility == VISIBILITY_PUBLIC
        or session.owner_id == identity.id
        or identity.id in set(guest_ids)
    )


def can_edit(identity: Identity, session: SessionLike) -> bool:
    return is_privileged(identity) or session.owner_id == identity.id


def can_delete(identity: Identity, session: SessionLike) -> bool:
    return can_edit(identity, session)


def can_create_session(identity: Identity) -> bool:
    return is_privileged(identity)


def can_review(identity: Identity) -> bool:
    return is_privileged(identity)


def can_self_promote(identity: Identity, request: RequestLike) -> bool:
    return (
        identity.role == ROLE_BASIC
        and request.status == REQUEST_STATUS_APPROVED
        and request.requester_id == identity.id
    )


def can_materialize(identity: Identity, request: RequestLike) -> bool:
    return can_review(identity) or can_self_promote(identity, request)


def can_see_request(identity: Identity, request: RequestLike) -> bool:
    return is_privileged(identity) or request.requester_id == identity.id


def can_edit_comment(identity: Identity, comment: Any) -> bool:
    return comment.author_id == identity.id


def can_edit_profile(identity: Identity, user_id: str) -> bool:
    return is_admin(identity) or identity.id == user_id


def can_manage_users(identity: Identity) -> bool:
    return is_admin(identity)


def require(allowed: bool, *, capability: Capability, identity: Identity, detail: str, **context: Any) -> None:
    """Raise Forbidden with a readable reason when a predicate said no."""

    if allowed:
        return
    record_access_denied(capability=capability.value)
    logger.info(
        "access_denied",
        capability=capability.value,
        actor_id=identity.id,
        actor_role=identity.role,
        **context,
    )
    raise Forbidden(detail, capability=capability.value)
