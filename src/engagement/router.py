"""Interest and comment API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from src.auth.dependencies import require_identity
from src.auth.identity import Identity
from src.engagement.service import (
    add_comment,
    delete_comment,
    edit_comment,
    get_interest_state,
    list_comments,
    list_interests,
    toggle_interest,
)
from src.schemas.engagement import (
    CommentCreateRequest,
    CommentListResponse,
    CommentResponse,
    InterestListResponse,
    InterestResponse,
    InterestStateResponse,
)
from src.storage.db import get_session
from src.storage.models import SessionComment, isoformat


router = APIRouter(tags=["engagement"])


def _comment_response(comment: SessionComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        session_id=comment.session_id,
        author_id=comment.author_id,
        content=comment.content,
        created_at=isoformat(comment.created_at),
        updated_at=isoformat(comment.updated_at),
        edited=comment.updated_at != comment.created_at,
    )


@router.get("/sessions/{session_id}/interest", response_model=InterestStateResponse)
def read_interest_state(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> InterestStateResponse:
    state = get_interest_state(session, identity, session_id)
    return InterestStateResponse(
        session_id=state.session_id,
        interested=state.interested,
        interest_count=state.interest_count,
    )


@router.post("/sessions/{session_id}/interest", response_model=InterestStateResponse)
def post_interest_toggle(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> InterestStateResponse:
    state = toggle_interest(session, identity, session_id)
    return InterestStateResponse(
        session_id=state.session_id,
        interested=state.interested,
        interest_count=state.interest_count,
    )


@router.get("/sessions/{session_id}/interests", response_model=InterestListResponse)
def read_interests(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> InterestListResponse:
    interests = list_interests(session, identity, session_id)
    return InterestListResponse(
        session_id=session_id,
        items=[InterestResponse(user_id=item.user_id, created_at=isoformat(item.created_at)) for item in interests],
        count=len(interests),
    )


@router.get("/sessions/{session_id}/comments", response_model=CommentListResponse)
def read_comments(
    session_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> CommentListResponse:
    comments = list_comments(session, identity, session_id)
    return CommentListResponse(items=[_comment_response(item) for item in comments], count=len(comments))


@router.post("/sessions/{session_id}/comments", response_model=CommentResponse, status_code=201)
def post_comment(
    session_id: str,
    payload: CommentCreateRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> CommentResponse:
    return _comment_response(add_comment(session, identity, session_id, payload.content))


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
def patch_comment(
    comment_id: str,
    payload: CommentCreateRequest,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> CommentResponse:
    return _comment_response(edit_comment(session, identity, comment_id, payload.content))


@router.delete("/comments/{comment_id}", status_code=204)
def remove_comment(
    comment_id: str,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
) -> Response:
    delete_comment(session, identity, comment_id)
    return Response(status_code=204)
