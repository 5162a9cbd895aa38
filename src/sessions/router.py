"""Session and tag API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from src.auth.dependencies import require_identity
from src.auth.identity import Identity
from src.schemas.session import (
    SessionAssociationsRequest,
    SessionDraftRequest,
    SessionListResponse,
    SessionResponse,
    SessionStatsResponse,
    SessionSummaryResponse,
    SessionUpdateRequest,
    TagCreateRequest,
    TagListResponse,
    TagResponse,
)
from src.sessions.materializer import SessionDraft, parse_instant
from src.sessions.service import (
    SessionChanges,
    create_session,
    delete_session,
    get_session_detail,
    is_past,
    list_visible_sessions,
    repair_session_associations,
    session_stats,
    update_session,
)
from src.sessions.tags import create_tag, list_tags
from src.storage.db import get_session
from src.storage.models import ScheduledSession, Tag, isoformat


router = APIRouter(tags=["sessions"])


def draft_from_payload(payload: SessionDraftRequest) -> SessionDraft:
    return SessionDraft(
        title=payload.title,
        description=payload.description,
        scheduled_at=payload.datetime,
        date=payload.date,
        time=payload.time,
        visibility=payload.visibility,
        presentation_url=payload.presentation_url,
        recording_url=payload.recording_url,
        tag_ids=list(payload.tag_ids),
        new_tag_names=list(payload.new_tag_names),
        guest_ids=list(payload.guest_ids),
    )


def _tag_response(tag: Tag) -> TagResponse:
    return TagResponse(id=tag.id, name=tag.name, color=tag.color)


def _summary(scheduled: ScheduledSession) -> SessionSummaryResponse:
    return SessionSummaryResponse(
        id=scheduled.id,
        title=scheduled.title,
        datetime=isoformat(scheduled.scheduled_at),
        visibility=scheduled.visibility,
        owner_id=scheduled.owner_id,
        is_past=is_past(scheduled),
    )


def session_response(session: Session, identity: Identity, session_id: str) -> SessionResponse:
    detail = get_session_detail(session, identity, session_id)
    scheduled = detail.session
    return SessionResponse(
        id=scheduled.id,
        title=scheduled.title,
        description=scheduled.description,
        datetime=isoformat(scheduled.scheduled_at),
        visibility=scheduled.visibility,
        presentation_url=scheduled.presentation_url,
        recording_url=scheduled.recording_url,
        owner_id=scheduled.owner_id,
        is_past=is_past(scheduled),
        tags=[_tag_response(tag) for tag in detail.tags],
        guest_ids=detail.guest_ids,
        interest_count=detail.interest_count,
        is_interested=detail.is_interested,
        can_edit=detail.can_edit,
        created_at=isoformat(scheduled.created_at),
        updated_at=isoformat(scheduled.updated_at),
    )


@router.get("/sessions", response_model=SessionListResponse)
def read_sessions(
    starts_after: Optional[str] = Query(default=None),
    starts_before: Optional[str] = Query(default=None),
    tag_id: Optional[str] = Query(default=None),
    mine: bool = Query(default=False),
    q: Optional[str] = Query(default=None, max_length=200),
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionListResponse:
    sessions = list_visible_sessions(
        session,
        identity,
        starts_after=parse_instant(starts_after) if starts_after else None,
        starts_before=parse_instant(starts_before) if starts_before else None,
        tag_id=tag_id,
        owned_only=mine,
        q=q,
    )
    return SessionListResponse(items=[_summary(item) for item in sessions], count=len(sessions))


@router.get("/sessions/stats", response_model=SessionStatsResponse)
def read_session_stats(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionStatsResponse:
    stats = session_stats(session, identity)
    return SessionStatsResponse(
        total=stats.total,
        upcoming=stats.upcoming,
        completed=stats.completed,
        mine=stats.mine,
        pending_requests=stats.pending_requests,
        users=stats.users,
    )


@router.post("/sessions", response_model=SessionResponse, status_code=201)
def post_session(
    payload: SessionDraftRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionResponse:
    scheduled = create_session(session, identity, draft_from_payload(payload))
    return session_response(session, identity, scheduled.id)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def read_session(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionResponse:
    return session_response(session, identity, session_id)


@router.patch("/sessions/{session_id}", response_model=SessionResponse)
def patch_session(
    session_id: str,
    payload: SessionUpdateRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionResponse:
    changes = SessionChanges(
        title=payload.title,
        description=payload.description,
        scheduled_at=payload.datetime,
        visibility=payload.visibility,
        presentation_url=payload.presentation_url,
        recording_url=payload.recording_url,
        tag_ids=payload.tag_ids,
        guest_ids=payload.guest_ids,
    )
    update_session(session, identity, session_id, changes)
    return session_response(session, identity, session_id)


@router.put("/sessions/{session_id}/associations", response_model=SessionResponse)
def put_session_associations(
    session_id: str,
    payload: SessionAssociationsRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionResponse:
    repair_session_associations(
        session,
        identity,
        session_id,
        tag_ids=payload.tag_ids,
        guest_ids=payload.guest_ids,
    )
    return session_response(session, identity, session_id)


@router.delete("/sessions/{session_id}", status_code=204)
def remove_session(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> Response:
    delete_session(session, identity, session_id)
    return Response(status_code=204)


@router.get("/tags", response_model=TagListResponse)
def read_tags(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> TagListResponse:
    tags = list_tags(session)
    return TagListResponse(items=[_tag_response(tag) for tag in tags], count=len(tags))


@router.post("/tags", response_model=TagResponse, status_code=201)
def post_tag(
    payload: TagCreateRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> TagResponse:
    return _tag_response(create_tag(session, identity, name=payload.name, color=payload.color))
