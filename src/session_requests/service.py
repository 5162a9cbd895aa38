"""Session request lifecycle: submission, review and materialization."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.access.policy import (
    Capability,
    can_materialize,
    can_review,
    can_see_request,
    is_privileged,
    require,
)
from src.auth.identity import Identity
from src.core.errors import Conflict, NotFound, ValidationError
from src.core.logger import get_logger
from src.core.metrics import record_request_transition, record_write_conflict
from src.session_requests.states import (
    EVENT_APPROVE,
    EVENT_MATERIALIZE,
    EVENT_REJECT,
    REQUEST_STATUS_PENDING,
    next_status,
    normalize_request_status,
    source_status,
)
from src.sessions.materializer import SessionDraft, materialize, parse_instant
from src.storage.db import commit_or_unknown
from src.storage.models import VISIBILITIES, ScheduledSession, SessionRequest, utcnow


logger = get_logger("talkboard.session_requests")


def submit_request(
    session: Session,
    identity: Identity,
    *,
    title: str,
    description: str,
    requested_datetime: str,
    visibility: str = "public",
) -> SessionRequest:
    cleaned_title = title.strip()
    cleaned_description = description.strip()
    if not cleaned_title or not cleaned_description:
        raise ValidationError("Title and description are required")
    if visibility not in VISIBILITIES:
        raise ValidationError(f"Unknown visibility: {visibility}")

    now = utcnow()
    request = SessionRequest(
        title=cleaned_title,
        description=cleaned_description,
        requested_datetime=parse_instant(requested_datetime),
        visibility=visibility,
        status=REQUEST_STATUS_PENDING,
        requester_id=identity.id,
        created_at=now,
        updated_at=now,
    )
    session.add(request)
    commit_or_unknown(session, action="submit_request")
    logger.info("session_request_submitted", request_id=request.id, requester_id=identity.id)
    return request


def _load_request(session: Session, request_id: str) -> SessionRequest:
    request = session.scalar(select(SessionRequest).where(SessionRequest.id == request_id))
    if request is None:
        raise NotFound("Session request not found")
    return request


def get_request(session: Session, identity: Identity, request_id: str) -> SessionRequest:
    request = _load_request(session, request_id)
    require(
        can_see_request(identity, request),
        capability=Capability.REVIEW_REQUEST,
        identity=identity,
        detail="You can only view your own requests",
        request_id=request_id,
    )
    return request


def list_requests(session: Session, identity: Identity, *, status: Optional[str] = None) -> List[SessionRequest]:
    """Newest first. Basic members only ever see their own proposals."""

    statement = select(SessionRequest).order_by(SessionRequest.created_at.desc())
    if status is not None:
        normalized = normalize_request_status(status)
        if normalized is None:
            raise ValidationError(f"Unknown status filter: {status}")
        statement = statement.where(SessionRequest.status == normalized)
    if not is_privileged(identity):
        statement = statement.where(SessionRequest.requester_id == identity.id)
    return list(session.scalars(statement).all())


def _transition(session: Session, request: SessionRequest, *, event: str, values: dict) -> SessionRequest:
    """Compare-and-set the status column; a lost race surfaces as Conflict."""

    expected = source_status(event)
    target = next_status(request.status, event)
    if target is None:
        raise Conflict(
            f"Cannot {event} a request that is {request.status}",
            request_id=request.id,
            status=request.status,
        )

    result = session.execute(
        update(SessionRequest)
        .where(SessionRequest.id == request.id, SessionRequest.status == expected)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        record_write_conflict(kind=event)
        logger.warning("session_request_conflict", request_id=request.id, transition=event)
        raise Conflict("The request was reviewed by someone else", request_id=request.id)

    commit_or_unknown(session, action=f"{event}_request")
    session.refresh(request)
    record_request_transition(event=event, to_status=target)
    return request


def approve_request(session: Session, identity: Identity, request_id: str) -> SessionRequest:
    request = _load_request(session, request_id)
    require(
        can_review(identity),
        capability=Capability.REVIEW_REQUEST,
        identity=identity,
        detail="Only planners and admins can approve requests",
        request_id=request_id,
    )
    now = utcnow()
    request = _transition(
        session,
        request,
        event=EVENT_APPROVE,
        values={"reviewer_id": identity.id, "reviewed_at": now, "updated_at": now},
    )
    logger.info("session_request_approved", request_id=request.id, reviewer_id=identity.id)
    return request


def reject_request(session: Session, identity: Identity, request_id: str, *, reason: str) -> SessionRequest:
    request = _load_request(session, request_id)
    require(
        can_review(identity),
        capability=Capability.REVIEW_REQUEST,
        identity=identity,
        detail="Only planners and admins can reject requests",
        request_id=request_id,
    )
    cleaned_reason = (reason or "").strip()
    if not cleaned_reason:
        raise ValidationError("Please provide a reason for rejection")

    now = utcnow()
    request = _transition(
        session,
        request,
        event=EVENT_REJECT,
        values={
            "reviewer_id": identity.id,
            "reviewed_at": now,
            "rejection_reason": cleaned_reason,
            "updated_at": now,
        },
    )
    logger.info("session_request_rejected", request_id=request.id, reviewer_id=identity.id)
    return request


def materialize_request(
    session: Session,
    identity: Identity,
    request_id: str,
    draft: SessionDraft,
) -> ScheduledSession:
    """Create the session for an approved request.

    Reviewers may do this for any approved request; a basic requester may do it
    for their own. Neither path changes the request status.
    """

    request = _load_request(session, request_id)
    require(
        can_materialize(identity, request),
        capability=Capability.MATERIALIZE_REQUEST,
        identity=identity,
        detail="Only reviewers or the requester of an approved request can create its session",
        request_id=request_id,
    )
    if next_status(request.status, EVENT_MATERIALIZE) is None:
        raise Conflict(
            f"Cannot create a session from a request that is {request.status}",
            request_id=request.id,
            status=request.status,
        )
    if request.linked_session_id is not None:
        record_write_conflict(kind="materialize")
        raise Conflict(
            "This request already has a session",
            request_id=request.id,
            linked_session_id=request.linked_session_id,
        )

    scheduled = materialize(session, identity, draft, request=request)
    record_request_transition(event=EVENT_MATERIALIZE, to_status=request.status)
    return scheduled
