"""Turn an approved request (or a direct draft) into a persisted session.

The session row and the request link are committed together under a guarded
update, so two concurrent materializations of one request can never both
produce a session. Tag and guest associations are written in a second step;
when that step fails the caller learns the id of the session that now exists
and can repair its associations with `replace_session_associations`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as date_type
from datetime import datetime, time as time_type, timezone
from typing import List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.auth.identity import Identity
from src.core.config import get_settings
from src.core.errors import Conflict, NotFound, OutcomeUnknown, PartialMaterialization, ValidationError
from src.core.logger import get_logger
from src.core.metrics import record_session_materialized, record_write_conflict
from src.session_requests.states import REQUEST_STATUS_APPROVED
from src.storage.db import commit_or_unknown
from src.storage.models import (
    VISIBILITIES,
    VISIBILITY_PRIVATE,
    ScheduledSession,
    SessionGuest,
    SessionRequest,
    SessionTag,
    Tag,
    User,
    utcnow,
)


logger = get_logger("talkboard.materializer")


@dataclass
class SessionDraft:
    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_at: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    visibility: Optional[str] = None
    presentation_url: Optional[str] = None
    recording_url: Optional[str] = None
    tag_ids: List[str] = field(default_factory=list)
    new_tag_names: List[str] = field(default_factory=list)
    guest_ids: List[str] = field(default_factory=list)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str) -> datetime:
    normalized = str(value or "").strip()
    if not normalized:
        raise ValidationError("A date and time are required")
    try:
        parsed = datetime.fromisoformat(normalized.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Not a valid date-time: {normalized}") from exc
    return _to_utc(parsed)


def parse_schedule(
    *,
    scheduled_at: Optional[str] = None,
    date: Optional[str] = None,
    time: Optional[str] = None,
) -> datetime:
    """Combine the schedule inputs into one UTC instant.

    Either a full ISO date-time or a separate `date` (YYYY-MM-DD) plus `time`
    (HH:MM) is accepted; a partial pair is rejected rather than guessed.
    """

    if scheduled_at:
        return parse_instant(scheduled_at)
    if not date or not time:
        raise ValidationError("Both a date and a time are required")
    try:
        day = date_type.fromisoformat(date.strip())
        clock = time_type.fromisoformat(time.strip())
    except ValueError as exc:
        raise ValidationError(f"Not a valid date/time pair: {date} {time}") from exc
    return _to_utc(datetime.combine(day, clock))


def _unique(values: Sequence[str]) -> List[str]:
    seen: dict[str, None] = {}
    for value in values:
        cleaned = str(value).strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def ensure_tags_exist(session: Session, tag_ids: Sequence[str]) -> None:
    if not tag_ids:
        return
    found = set(session.scalars(select(Tag.id).where(Tag.id.in_(tag_ids))).all())
    missing = [tag_id for tag_id in tag_ids if tag_id not in found]
    if missing:
        raise NotFound(f"Unknown tag ids: {', '.join(missing)}")


def ensure_users_exist(session: Session, user_ids: Sequence[str]) -> None:
    if not user_ids:
        return
    found = set(session.scalars(select(User.id).where(User.id.in_(user_ids))).all())
    missing = [user_id for user_id in user_ids if user_id not in found]
    if missing:
        raise NotFound(f"Unknown guest ids: {', '.join(missing)}")


def create_tags(session: Session, names: Sequence[str]) -> List[Tag]:
    """Insert one tag per name; tag names are not unique."""

    color = get_settings().default_tag_color
    tags = [Tag(name=name.strip(), color=color) for name in names if name.strip()]
    session.add_all(tags)
    session.flush()
    return tags


def replace_session_associations(
    session: Session,
    scheduled: ScheduledSession,
    *,
    tag_ids: Sequence[str],
    guest_ids: Sequence[str],
) -> None:
    """Delete-then-insert the tag and guest rows of one session, then commit.

    Safe to repeat: the end state depends only on the arguments. Guests are
    dropped entirely for public sessions.
    """

    unique_tags = _unique(tag_ids)
    unique_guests = _unique(guest_ids) if scheduled.visibility == VISIBILITY_PRIVATE else []

    session.execute(delete(SessionTag).where(SessionTag.session_id == scheduled.id))
    session.execute(delete(SessionGuest).where(SessionGuest.session_id == scheduled.id))
    session.add_all(SessionTag(session_id=scheduled.id, tag_id=tag_id) for tag_id in unique_tags)
    session.add_all(SessionGuest(session_id=scheduled.id, user_id=user_id) for user_id in unique_guests)
    commit_or_unknown(session, action="write_session_associations")


def _resolve_fields(draft: SessionDraft, request: Optional[SessionRequest]) -> dict:
    title = draft.title if draft.title is not None else (request.title if request else "")
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")

    description = draft.description if draft.description is not None else (request.description if request else "")

    if draft.scheduled_at or draft.date or draft.time:
        scheduled_at = parse_schedule(scheduled_at=draft.scheduled_at, date=draft.date, time=draft.time)
    elif request is not None:
        scheduled_at = _to_utc(request.requested_datetime)
    else:
        raise ValidationError("A date and time are required")

    visibility = draft.visibility or (request.visibility if request else None) or "public"
    if visibility not in VISIBILITIES:
        raise ValidationError(f"Unknown visibility: {visibility}")

    return {
        "title": title,
        "description": (description or "").strip(),
        "scheduled_at": scheduled_at,
        "visibility": visibility,
        "presentation_url": (draft.presentation_url or "").strip() or None,
        "recording_url": (draft.recording_url or "").strip() or None,
    }


def materialize(
    session: Session,
    identity: Identity,
    draft: SessionDraft,
    *,
    request: Optional[SessionRequest] = None,
) -> ScheduledSession:
    """Persist a session for `identity`; authorization is the caller's job."""

    fields = _resolve_fields(draft, request)
    tag_ids = _unique(draft.tag_ids)
    guest_ids = _unique(draft.guest_ids) if fields["visibility"] == VISIBILITY_PRIVATE else []
    ensure_tags_exist(session, tag_ids)
    ensure_users_exist(session, guest_ids)

    now = utcnow()
    scheduled = ScheduledSession(owner_id=identity.id, created_at=now, updated_at=now, **fields)
    session.add(scheduled)
    session.flush()

    session_id = scheduled.id
    if request is not None:
        request_id = request.id
        linked = session.execute(
            update(SessionRequest)
            .where(
                SessionRequest.id == request_id,
                SessionRequest.status == REQUEST_STATUS_APPROVED,
                SessionRequest.linked_session_id.is_(None),
            )
            .values(linked_session_id=session_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if linked.rowcount != 1:
            session.rollback()
            record_write_conflict(kind="materialize")
            logger.warning("materialize_conflict", request_id=request_id, actor_id=identity.id)
            raise Conflict("This request already has a session", request_id=request_id)

    commit_or_unknown(session, action="materialize_session")
    if request is not None:
        session.refresh(request)

    origin = "request" if request is not None else "direct"
    record_session_materialized(origin=origin)
    logger.info(
        "session_materialized",
        session_id=scheduled.id,
        request_id=request.id if request is not None else None,
        actor_id=identity.id,
        visibility=scheduled.visibility,
    )

    try:
        created_tags = create_tags(session, draft.new_tag_names)
        replace_session_associations(
            session,
            scheduled,
            tag_ids=tag_ids + [tag.id for tag in created_tags],
            guest_ids=guest_ids,
        )
    except OutcomeUnknown as exc:
        raise OutcomeUnknown(exc.detail, session_id=session_id) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("session_associations_incomplete", session_id=session_id, error=str(exc))
        raise PartialMaterialization(
            "Session was created but its tags or guests could not all be saved; "
            "re-submit them to repair the session.",
            session_id=session_id,
        ) from exc

    return scheduled
