from __future__ import annotations

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm.attributes import set_committed_value

from src.core.errors import Conflict, Forbidden, NotFound, ValidationError
from src.session_requests.service import (
    approve_request,
    get_request,
    list_requests,
    materialize_request,
    reject_request,
    submit_request,
)
from src.sessions.materializer import SessionDraft
from src.sessions.service import guest_ids_for
from src.storage.models import ScheduledSession, SessionRequest


def _submit(db, requester, *, title: str = "Intro to Rust", visibility: str = "public") -> SessionRequest:
    return submit_request(
        db,
        requester,
        title=title,
        description="Ownership and borrowing for newcomers",
        requested_datetime="2099-03-14T17:00:00Z",
        visibility=visibility,
    )


def _session_count(db) -> int:
    return int(db.scalar(select(func.count()).select_from(ScheduledSession)) or 0)


def test_submit_request_starts_pending(db, make_user) -> None:
    requester = make_user("basic")
    request = _submit(db, requester)

    assert request.status == "pending"
    assert request.requester_id == requester.id
    assert request.linked_session_id is None
    assert request.requested_datetime.year == 2099


def test_submit_request_requires_title_description_and_datetime(db, make_user) -> None:
    requester = make_user("basic")

    with pytest.raises(ValidationError):
        submit_request(db, requester, title=" ", description="x", requested_datetime="2099-01-01T10:00:00Z")
    with pytest.raises(ValidationError):
        submit_request(db, requester, title="Talk", description="", requested_datetime="2099-01-01T10:00:00Z")
    with pytest.raises(ValidationError):
        submit_request(db, requester, title="Talk", description="x", requested_datetime="next tuesday")


def test_intro_to_rust_rejection_scenario(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)

    with pytest.raises(ValidationError):
        reject_request(db, planner, request.id, reason="")
    db.refresh(request)
    assert request.status == "pending"
    assert request.rejection_reason is None

    rejected = reject_request(db, planner, request.id, reason="duplicate topic")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "duplicate topic"
    assert rejected.reviewer_id == planner.id
    assert rejected.reviewed_at is not None


def test_rejected_request_cannot_be_approved(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)
    reject_request(db, planner, request.id, reason="out of scope")

    with pytest.raises(Conflict) as exc_info:
        approve_request(db, planner, request.id)
    assert exc_info.value.to_payload()["refetch"] is True


def test_basic_user_cannot_review(db, make_user) -> None:
    requester = make_user("basic")
    request = _submit(db, requester)

    with pytest.raises(Forbidden):
        approve_request(db, requester, request.id)
    with pytest.raises(Forbidden):
        reject_request(db, requester, request.id, reason="no")

    db.refresh(request)
    assert request.status == "pending"


def test_stale_reviewer_loses_compare_and_set(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)

    # Another reviewer approves behind this session's back.
    db.execute(
        update(SessionRequest)
        .where(SessionRequest.id == request.id)
        .values(status="approved")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    assert request.status == "pending"

    with pytest.raises(Conflict):
        reject_request(db, planner, request.id, reason="too late")

    stored = db.scalar(select(SessionRequest.status).where(SessionRequest.id == request.id))
    assert stored == "approved"


def test_self_materialization_scenario(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)
    approve_request(db, planner, request.id)

    scheduled = materialize_request(
        db,
        requester,
        request.id,
        SessionDraft(date="2099-03-21", time="18:30"),
    )

    db.refresh(request)
    assert request.status == "approved"
    assert request.linked_session_id == scheduled.id
    assert scheduled.owner_id == requester.id
    assert scheduled.title == "Intro to Rust"
    assert scheduled.scheduled_at.hour == 18
    assert scheduled.scheduled_at.minute == 30
    assert _session_count(db) == 1

    with pytest.raises(Conflict):
        materialize_request(db, requester, request.id, SessionDraft(date="2099-03-22", time="10:00"))
    assert _session_count(db) == 1
    db.refresh(request)
    assert request.linked_session_id == scheduled.id


def test_guarded_link_rejects_stale_materialization(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)
    approve_request(db, planner, request.id)
    first = materialize_request(db, planner, request.id, SessionDraft())

    # Simulate a reader that loaded the request before the link was written.
    set_committed_value(request, "linked_session_id", None)

    with pytest.raises(Conflict):
        materialize_request(db, requester, request.id, SessionDraft())

    assert _session_count(db) == 1
    stored = db.scalar(select(SessionRequest.linked_session_id).where(SessionRequest.id == request.id))
    assert stored == first.id


def test_pending_request_cannot_be_materialized(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)

    with pytest.raises(Forbidden):
        materialize_request(db, requester, request.id, SessionDraft())
    with pytest.raises(Conflict):
        materialize_request(db, planner, request.id, SessionDraft())
    assert _session_count(db) == 0


def test_other_basic_user_cannot_materialize(db, make_user) -> None:
    requester = make_user("basic")
    stranger = make_user("basic")
    planner = make_user("planner")
    request = _submit(db, requester)
    approve_request(db, planner, request.id)

    with pytest.raises(Forbidden):
        materialize_request(db, stranger, request.id, SessionDraft())


def test_private_request_materializes_with_guests(db, make_user) -> None:
    requester = make_user("basic")
    planner = make_user("planner")
    guest = make_user("basic")
    request = _submit(db, requester, visibility="private")
    approve_request(db, planner, request.id)

    scheduled = materialize_request(db, planner, request.id, SessionDraft(guest_ids=[guest.id]))

    assert scheduled.visibility == "private"
    assert scheduled.owner_id == planner.id
    assert guest_ids_for(db, scheduled.id) == [guest.id]


def test_list_requests_scopes_basic_users_to_their_own(db, make_user) -> None:
    alice = make_user("basic")
    bob = make_user("basic")
    planner = make_user("planner")
    alice_request = _submit(db, alice, title="Alice talk")
    bob_request = _submit(db, bob, title="Bob talk")
    approve_request(db, planner, bob_request.id)

    assert [item.id for item in list_requests(db, alice)] == [alice_request.id]
    assert {item.id for item in list_requests(db, planner)} == {alice_request.id, bob_request.id}
    assert [item.id for item in list_requests(db, planner, status="approved")] == [bob_request.id]
    assert list_requests(db, alice, status="approved") == []

    with pytest.raises(ValidationError):
        list_requests(db, planner, status="archived")


def test_get_request_hides_other_users_requests(db, make_user) -> None:
    alice = make_user("basic")
    bob = make_user("basic")
    request = _submit(db, alice)

    assert get_request(db, alice, request.id).id == request.id
    with pytest.raises(Forbidden):
        get_request(db, bob, request.id)
    with pytest.raises(NotFound):
        get_request(db, alice, "missing-request")
