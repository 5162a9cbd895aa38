"""Per-session interest toggles and comments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.access.policy import Capability, can_edit_comment, require
from src.auth.identity import Identity
from src.core.errors import Conflict, NotFound, ValidationError
from src.core.logger import get_logger
from src.core.metrics import record_write_conflict
from src.sessions.service import load_viewable_session
from src.storage.db import commit_or_unknown
from src.storage.models import SessionComment, SessionInterest, utcnow


logger = get_logger("talkboard.engagement")


@dataclass(frozen=True)
class InterestState:
    session_id: str
    interested: bool
    interest_count: int


def _interest_count(session: Session, session_id: str) -> int:
    count = session.scalar(
        select(func.count()).select_from(SessionInterest).where(SessionInterest.session_id == session_id)
    )
    return int(count or 0)


def get_interest_state(session: Session, identity: Identity, session_id: str) -> InterestState:
    load_viewable_session(session, identity, session_id)
    existing = session.scalar(
        select(SessionInterest.id).where(
            SessionInterest.session_id == session_id,
            SessionInterest.user_id == identity.id,
        )
    )
    return InterestState(
        session_id=session_id,
        interested=existing is not None,
        interest_count=_interest_count(session, session_id),
    )


def toggle_interest(session: Session, identity: Identity, session_id: str) -> InterestState:
    """Flip the caller's interest in a session and return the new state.

    Not idempotent: after a timeout, re-read the state with
    `get_interest_state` before toggling again.
    """

    load_viewable_session(session, identity, session_id)
    existing = session.scalar(
        select(SessionInterest).where(
            SessionInterest.session_id == session_id,
            SessionInterest.user_id == identity.id,
        )
    )
    if existing is not None:
        session.execute(delete(SessionInterest).where(SessionInterest.id == existing.id))
        interested = False
    else:
        session.add(SessionInterest(session_id=session_id, user_id=identity.id, created_at=utcnow()))
        interested = True

    try:
        commit_or_unknown(session, action="toggle_interest")
    except IntegrityError as exc:
        record_write_conflict(kind="interest")
        raise Conflict("Interest was changed concurrently", session_id=session_id) from exc

    logger.info("interest_toggled", session_id=session_id, user_id=identity.id, interested=interested)
    return InterestState(
        session_id=session_id,
        interested=interested,
        interest_count=_interest_count(session, session_id),
    )


def list_interests(session: Session, identity: Identity, session_id: str) -> List[SessionInterest]:
    load_viewable_session(session, identity, session_id)
    return list(
        session.scalars(
            select(SessionInterest)
            .where(SessionInterest.session_id == session_id)
            .order_by(SessionInterest.created_at.asc())
        ).all()
    )


def _clean_content(content: str) -> str:
    cleaned = (content or "").strip()
    if not cleaned:
        raise ValidationError("Comment must not be empty")
    return cleaned


def list_comments(session: Session, identity: Identity, session_id: str) -> List[SessionComment]:
    load_viewable_session(session, identity, session_id)
    return list(
        session.scalars(
            select(SessionComment)
            .where(SessionComment.session_id == session_id)
            .order_by(SessionComment.created_at.desc())
        ).all()
    )


def add_comment(session: Session, identity: Identity, session_id: str, content: str) -> SessionComment:
    cleaned = _clean_content(content)
    load_viewable_session(session, identity, session_id)

    now = utcnow()
    comment = SessionComment(
        session_id=session_id,
        author_id=identity.id,
        content=cleaned,
        created_at=now,
        updated_at=now,
    )
    session.add(comment)
    commit_or_unknown(session, action="add_comment")
    logger.info("comment_added", comment_id=comment.id, session_id=session_id, author_id=identity.id)
    return comment


def _load_own_comment(session: Session, identity: Identity, comment_id: str) -> SessionComment:
    comment = session.scalar(select(SessionComment).where(SessionComment.id == comment_id))
    if comment is None:
        raise NotFound("Comment not found")
    require(
        can_edit_comment(identity, comment),
        capability=Capability.EDIT_COMMENT,
        identity=identity,
        detail="You can only change your own comments",
        comment_id=comment_id,
    )
    load_viewable_session(session, identity, comment.session_id)
    return comment


def edit_comment(session: Session, identity: Identity, comment_id: str, content: str) -> SessionComment:
    comment = _load_own_comment(session, identity, comment_id)
    comment.content = _clean_content(content)
    comment.updated_at = utcnow()
    commit_or_unknown(session, action="edit_comment")
    return comment


def delete_comment(session: Session, identity: Identity, comment_id: str) -> None:
    comment = _load_own_comment(session, identity, comment_id)
    session.delete(comment)
    commit_or_unknown(session, action="delete_comment")
    logger.info("comment_deleted", comment_id=comment_id, author_id=identity.id)
