"""Session reads, edits and removal under the access policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, exists, func, or_, select
from sqlalchemy.orm import Session

from src.access.policy import (
    Capability,
    can_create_session,
    can_delete,
    can_edit,
    can_manage_users,
    can_view,
    is_privileged,
    require,
)
from src.auth.identity import Identity
from src.core.errors import NotFound, ValidationError
from src.core.logger import get_logger
from src.sessions.materializer import (
    SessionDraft,
    ensure_tags_exist,
    ensure_users_exist,
    materialize,
    parse_instant,
    replace_session_associations,
)
from src.storage.db import commit_or_unknown
from src.storage.models import (
    VISIBILITIES,
    VISIBILITY_PRIVATE,
    VISIBILITY_PUBLIC,
    ScheduledSession,
    SessionComment,
    SessionGuest,
    SessionInterest,
    SessionRequest,
    SessionTag,
    Tag,
    User,
    as_utc,
    utcnow,
)


logger = get_logger("talkboard.sessions")


@dataclass
class SessionDetail:
    session: ScheduledSession
    tags: List[Tag]
    guest_ids: List[str]
    interest_count: int
    is_interested: bool
    can_edit: bool


@dataclass(frozen=True)
class SessionStats:
    total: int
    upcoming: int
    completed: int
    mine: int
    pending_requests: int
    # Only filled in for admins.
    users: Optional[int] = None


@dataclass
class SessionChanges:
    """Partial update; attributes left as None are not touched."""

    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_at: Optional[str] = None
    visibility: Optional[str] = None
    presentation_url: Optional[str] = None
    recording_url: Optional[str] = None
    tag_ids: Optional[List[str]] = None
    guest_ids: Optional[List[str]] = None


def is_past(scheduled: ScheduledSession, *, now: Optional[datetime] = None) -> bool:
    return as_utc(scheduled.scheduled_at) <= (now or utcnow())


def guest_ids_for(session: Session, session_id: str) -> List[str]:
    return list(session.scalars(select(SessionGuest.user_id).where(SessionGuest.session_id == session_id)).all())


def tags_for(session: Session, session_id: str) -> List[Tag]:
    return list(
        session.scalars(
            select(Tag)
            .join(SessionTag, SessionTag.tag_id == Tag.id)
            .where(SessionTag.session_id == session_id)
            .order_by(Tag.name.asc())
        ).all()
    )


def _load_session(session: Session, session_id: str) -> ScheduledSession:
    scheduled = session.scalar(select(ScheduledSession).where(ScheduledSession.id == session_id))
    if scheduled is None:
        raise NotFound("Session not found")
    return scheduled


def load_viewable_session(session: Session, identity: Identity, session_id: str) -> ScheduledSession:
    scheduled = _load_session(session, session_id)
    require(
        can_view(identity, scheduled, guest_ids_for(session, session_id)),
        capability=Capability.VIEW_SESSION,
        identity=identity,
        detail="This session is private",
        session_id=session_id,
    )
    return scheduled


def get_session_detail(session: Session, identity: Identity, session_id: str) -> SessionDetail:
    scheduled = load_viewable_session(session, identity, session_id)
    interest_count = session.scalar(
        select(func.count()).select_from(SessionInterest).where(SessionInterest.session_id == session_id)
    )
    is_interested = session.scalar(
        select(SessionInterest.id).where(
            SessionInterest.session_id == session_id,
            SessionInterest.user_id == identity.id,
        )
    )
    return SessionDetail(
        session=scheduled,
        tags=tags_for(session, session_id),
        guest_ids=guest_ids_for(session, session_id),
        interest_count=int(interest_count or 0),
        is_interested=is_interested is not None,
        can_edit=can_edit(identity, scheduled),
    )


def _visible_sessions(identity: Identity):
    statement = select(ScheduledSession)
    if is_privileged(identity):
        return statement
    is_guest = exists().where(
        SessionGuest.session_id == ScheduledSession.id,
        SessionGuest.user_id == identity.id,
    )
    return statement.where(
        or_(
            ScheduledSession.visibility == VISIBILITY_PUBLIC,
            ScheduledSession.owner_id == identity.id,
            is_guest,
        )
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_visible_sessions(
    session: Session,
    identity: Identity,
    *,
    starts_after: Optional[datetime] = None,
    starts_before: Optional[datetime] = None,
    tag_id: Optional[str] = None,
    owned_only: bool = False,
    q: Optional[str] = None,
) -> List[ScheduledSession]:
    """Sessions the caller may see, latest first, optionally inside a time window.

    `q` keeps sessions whose title or description contains it, ignoring case.
    """

    statement = _visible_sessions(identity).order_by(ScheduledSession.scheduled_at.desc())
    if q is not None and q.strip():
        pattern = f"%{_escape_like(q.strip().lower())}%"
        statement = statement.where(
            or_(
                func.lower(ScheduledSession.title).like(pattern, escape="\\"),
                func.lower(ScheduledSession.description).like(pattern, escape="\\"),
            )
        )
    if starts_after is not None:
        statement = statement.where(ScheduledSession.scheduled_at >= starts_after)
    if starts_before is not None:
        statement = statement.where(ScheduledSession.scheduled_at <= starts_before)
    if tag_id is not None:
        statement = statement.where(
            exists().where(SessionTag.session_id == ScheduledSession.id, SessionTag.tag_id == tag_id)
        )
    if owned_only:
        statement = statement.where(ScheduledSession.owner_id == identity.id)
    return list(session.scalars(statement).all())


def _count(session: Session, statement) -> int:
    return int(session.scalar(select(func.count()).select_from(statement.subquery())) or 0)


def session_stats(session: Session, identity: Identity, *, now: Optional[datetime] = None) -> SessionStats:
    """Dashboard counts over the same visible set that listing uses."""

    now = now or utcnow()
    visible = _visible_sessions(identity)

    pending = select(SessionRequest.id).where(SessionRequest.status == "pending")
    if not is_privileged(identity):
        pending = pending.where(SessionRequest.requester_id == identity.id)

    users = None
    if can_manage_users(identity):
        users = int(session.scalar(select(func.count()).select_from(User)) or 0)

    return SessionStats(
        total=_count(session, visible),
        upcoming=_count(session, visible.where(ScheduledSession.scheduled_at > now)),
        completed=_count(session, visible.where(ScheduledSession.scheduled_at <= now)),
        mine=_count(session, select(ScheduledSession.id).where(ScheduledSession.owner_id == identity.id)),
        pending_requests=_count(session, pending),
        users=users,
    )


def create_session(session: Session, identity: Identity, draft: SessionDraft) -> ScheduledSession:
    require(
        can_create_session(identity),
        capability=Capability.CREATE_SESSION,
        identity=identity,
        detail="Only planners and admins can schedule sessions directly; submit a request instead",
    )
    return materialize(session, identity, draft)


def update_session(
    session: Session,
    identity: Identity,
    session_id: str,
    changes: SessionChanges,
) -> ScheduledSession:
    """Apply an edit; title and start time are frozen once the session has started."""

    scheduled = _load_session(session, session_id)
    require(
        can_edit(identity, scheduled),
        capability=Capability.EDIT_SESSION,
        identity=identity,
        detail="Only the owner, planners or admins can edit this session",
        session_id=session_id,
    )

    past = is_past(scheduled)
    title = scheduled.title
    if changes.title is not None:
        title = changes.title.strip()
        if not title:
            raise ValidationError("Title is required")
        if past and title != scheduled.title:
            raise ValidationError("The title of a past session cannot be changed")
    starts = as_utc(scheduled.scheduled_at)
    if changes.scheduled_at is not None:
        starts = parse_instant(changes.scheduled_at)
        if past and starts != as_utc(scheduled.scheduled_at):
            raise ValidationError("The date of a past session cannot be changed")
    if changes.visibility is not None and changes.visibility not in VISIBILITIES:
        raise ValidationError(f"Unknown visibility: {changes.visibility}")

    tag_ids = changes.tag_ids if changes.tag_ids is not None else [tag.id for tag in tags_for(session, session_id)]
    guest_ids = changes.guest_ids if changes.guest_ids is not None else guest_ids_for(session, session_id)
    visibility = changes.visibility or scheduled.visibility
    if visibility != VISIBILITY_PRIVATE:
        guest_ids = []
    ensure_tags_exist(session, tag_ids)
    ensure_users_exist(session, guest_ids)

    scheduled.title = title
    scheduled.scheduled_at = starts
    scheduled.visibility = visibility
    if changes.description is not None:
        scheduled.description = changes.description.strip()
    if changes.presentation_url is not None:
        scheduled.presentation_url = changes.presentation_url.strip() or None
    if changes.recording_url is not None:
        scheduled.recording_url = changes.recording_url.strip() or None

    scheduled.updated_at = utcnow()
    replace_session_associations(session, scheduled, tag_ids=tag_ids, guest_ids=guest_ids)
    logger.info("session_updated", session_id=session_id, actor_id=identity.id, past=past)
    return scheduled


def repair_session_associations(
    session: Session,
    identity: Identity,
    session_id: str,
    *,
    tag_ids: List[str],
    guest_ids: List[str],
) -> ScheduledSession:
    """Re-write tags and guests after a partially failed materialization."""

    scheduled = _load_session(session, session_id)
    require(
        can_edit(identity, scheduled),
        capability=Capability.EDIT_SESSION,
        identity=identity,
        detail="Only the owner, planners or admins can edit this session",
        session_id=session_id,
    )
    ensure_tags_exist(session, tag_ids)
    ensure_users_exist(session, guest_ids)
    replace_session_associations(session, scheduled, tag_ids=tag_ids, guest_ids=guest_ids)
    logger.info("session_associations_repaired", session_id=session_id, actor_id=identity.id)
    return scheduled


def delete_session(session: Session, identity: Identity, session_id: str) -> None:
    scheduled = _load_session(session, session_id)
    require(
        can_delete(identity, scheduled),
        capability=Capability.DELETE_SESSION,
        identity=identity,
        detail="Only the owner, planners or admins can delete this session",
        session_id=session_id,
    )
    for association in (SessionTag, SessionGuest, SessionInterest, SessionComment):
        session.execute(delete(association).where(association.session_id == session_id))
    session.delete(scheduled)
    commit_or_unknown(session, action="delete_session")
    logger.info("session_deleted", session_id=session_id, actor_id=identity.id)
