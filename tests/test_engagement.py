from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

import src.engagement.service as engagement_service
from src.core.errors import Conflict, Forbidden, NotFound, ValidationError
from src.core.metrics import render_prometheus_metrics
from src.engagement.service import (
    add_comment,
    delete_comment,
    edit_comment,
    get_interest_state,
    list_comments,
    list_interests,
    toggle_interest,
)
from src.sessions.materializer import SessionDraft
from src.sessions.service import SessionChanges, create_session, update_session
from src.storage.models import SessionInterest, utcnow


@pytest.fixture
def public_session(db, make_user):
    planner = make_user("planner")
    return create_session(db, planner, SessionDraft(title="Talk", scheduled_at="2099-06-01T16:00:00Z"))


def test_interest_toggle_is_its_own_inverse(db, make_user, public_session) -> None:
    member = make_user("basic")
    before = get_interest_state(db, member, public_session.id)

    first = toggle_interest(db, member, public_session.id)
    second = toggle_interest(db, member, public_session.id)

    assert before.interested is False
    assert first.interested is True
    assert first.interest_count == 1
    assert second.interested is before.interested
    assert second.interest_count == before.interest_count


def test_interest_counts_every_member(db, make_user, public_session) -> None:
    alice = make_user("basic")
    bob = make_user("basic")
    toggle_interest(db, alice, public_session.id)
    state = toggle_interest(db, bob, public_session.id)

    assert state.interest_count == 2
    assert {item.user_id for item in list_interests(db, alice, public_session.id)} == {alice.id, bob.id}


def test_private_session_engagement_requires_view_access(db, make_user) -> None:
    planner = make_user("planner")
    outsider = make_user("basic")
    hidden = create_session(
        db,
        planner,
        SessionDraft(title="Hidden", scheduled_at="2099-06-01T16:00:00Z", visibility="private"),
    )

    with pytest.raises(Forbidden):
        toggle_interest(db, outsider, hidden.id)
    with pytest.raises(Forbidden):
        add_comment(db, outsider, hidden.id, "let me in")
    with pytest.raises(NotFound):
        toggle_interest(db, outsider, "missing-session")


def test_empty_comment_is_rejected(db, make_user, public_session) -> None:
    member = make_user("basic")

    with pytest.raises(ValidationError):
        add_comment(db, member, public_session.id, "   ")
    assert list_comments(db, member, public_session.id) == []


def test_comments_are_listed_newest_first(db, make_user, public_session, monkeypatch) -> None:
    member = make_user("basic")
    base = datetime(2099, 1, 1, 12, 0, tzinfo=timezone.utc)
    ticks = iter([base, base + timedelta(minutes=5)])
    monkeypatch.setattr(engagement_service, "utcnow", lambda: next(ticks))

    first = add_comment(db, member, public_session.id, "first")
    second = add_comment(db, member, public_session.id, "second")

    assert first.created_at == first.updated_at
    assert [item.id for item in list_comments(db, member, public_session.id)] == [second.id, first.id]


def test_only_the_author_edits_or_deletes_a_comment(db, make_user, public_session) -> None:
    author = make_user("basic")
    admin = make_user("admin")
    comment = add_comment(db, author, public_session.id, "original")

    with pytest.raises(Forbidden):
        edit_comment(db, admin, comment.id, "moderated")
    with pytest.raises(Forbidden):
        delete_comment(db, admin, comment.id)

    edited = edit_comment(db, author, comment.id, "  revised  ")
    assert edited.content == "revised"
    assert edited.updated_at >= edited.created_at

    delete_comment(db, author, comment.id)
    assert list_comments(db, author, public_session.id) == []
    with pytest.raises(NotFound):
        edit_comment(db, author, comment.id, "gone")


def test_comment_changes_require_view_access(db, make_user) -> None:
    planner = make_user("planner")
    member = make_user("basic")
    scheduled = create_session(db, planner, SessionDraft(title="Talk", scheduled_at="2099-06-01T16:00:00Z"))
    comment = add_comment(db, member, scheduled.id, "see you there")

    update_session(db, planner, scheduled.id, SessionChanges(visibility="private"))

    with pytest.raises(Forbidden):
        edit_comment(db, member, comment.id, "rewritten")
    with pytest.raises(Forbidden):
        delete_comment(db, member, comment.id)
    assert [item.content for item in list_comments(db, planner, scheduled.id)] == ["see you there"]


def test_interest_insert_race_is_a_conflict(db, session_factory, make_user, public_session, monkeypatch) -> None:
    member = make_user("basic")
    real_commit = engagement_service.commit_or_unknown

    def commit_after_competing_insert(session, *, action):
        competing = session_factory()
        try:
            competing.add(SessionInterest(session_id=public_session.id, user_id=member.id, created_at=utcnow()))
            competing.commit()
        finally:
            competing.close()
        real_commit(session, action=action)

    monkeypatch.setattr(engagement_service, "commit_or_unknown", commit_after_competing_insert)

    with pytest.raises(Conflict) as exc_info:
        toggle_interest(db, member, public_session.id)
    assert exc_info.value.to_payload()["refetch"] is True

    monkeypatch.setattr(engagement_service, "commit_or_unknown", real_commit)
    state = get_interest_state(db, member, public_session.id)
    assert state.interested is True
    assert state.interest_count == 1
    body = render_prometheus_metrics(app_name="talkboard", app_version="0.1.0", env="test")
    assert 'talkboard_write_conflicts_total{kind="interest"} 1' in body
