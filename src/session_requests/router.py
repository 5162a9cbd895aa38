"""Session request API routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.auth.dependencies import require_identity
from src.auth.identity import Identity
from src.schemas.session import SessionDraftRequest, SessionResponse
from src.schemas.session_request import (
    RejectRequest,
    SessionRequestCreate,
    SessionRequestListResponse,
    SessionRequestResponse,
)
from src.session_requests.service import (
    approve_request,
    get_request,
    list_requests,
    materialize_request,
    reject_request,
    submit_request,
)
from src.sessions.router import session_response, draft_from_payload
from src.storage.db import get_session
from src.storage.models import SessionRequest, isoformat


router = APIRouter(prefix="/session-requests", tags=["session-requests"])


def _request_response(request: SessionRequest) -> SessionRequestResponse:
    return SessionRequestResponse(
        id=request.id,
        title=request.title,
        description=request.description,
        requested_datetime=isoformat(request.requested_datetime),
        visibility=request.visibility,
        status=request.status,
        requester_id=request.requester_id,
        reviewer_id=request.reviewer_id,
        reviewed_at=isoformat(request.reviewed_at),
        rejection_reason=request.rejection_reason,
        linked_session_id=request.linked_session_id,
        created_at=isoformat(request.created_at),
        updated_at=isoformat(request.updated_at),
    )


@router.get("", response_model=SessionRequestListResponse)
def read_requests(
    status: Optional[str] = Query(default=None),
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionRequestListResponse:
    requests = list_requests(session, identity, status=status)
    return SessionRequestListResponse(items=[_request_response(item) for item in requests], count=len(requests))


@router.post("", response_model=SessionRequestResponse, status_code=201)
def post_request(
    payload: SessionRequestCreate,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionRequestResponse:
    request = submit_request(
        session,
        identity,
        title=payload.title,
        description=payload.description,
        requested_datetime=payload.requested_datetime,
        visibility=payload.visibility,
    )
    return _request_response(request)


@router.get("/{request_id}", response_model=SessionRequestResponse)
def read_request(
    request_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionRequestResponse:
    return _request_response(get_request(session, identity, request_id))


@router.post("/{request_id}/approve", response_model=SessionRequestResponse)
def post_approve(
    request_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionRequestResponse:
    return _request_response(approve_request(session, identity, request_id))


@router.post("/{request_id}/reject", response_model=SessionRequestResponse)
def post_reject(
    request_id: str,
    payload: RejectRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionRequestResponse:
    return _request_response(reject_request(session, identity, request_id, reason=payload.reason))


@router.post("/{request_id}/materialize", response_model=SessionResponse, status_code=201)
def post_materialize(
    request_id: str,
    payload: SessionDraftRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> SessionResponse:
    scheduled = materialize_request(session, identity, request_id, draft_from_payload(payload))
    return session_response(session, identity, scheduled.id)
