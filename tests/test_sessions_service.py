from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from src.core.errors import Forbidden, NotFound, ValidationError
from src.engagement.service import add_comment, toggle_interest
from src.session_requests.service import submit_request
from src.sessions.materializer import SessionDraft
from src.sessions.service import (
    SessionChanges,
    create_session,
    delete_session,
    get_session_detail,
    guest_ids_for,
    list_visible_sessions,
    session_stats,
    tags_for,
    update_session,
)
from src.sessions.tags import create_tag, list_tags
from src.storage.models import SessionComment, SessionInterest, SessionTag


def _create(db, planner, *, title: str, when: str = "2099-06-01T16:00:00Z", **kwargs):
    return create_session(db, planner, SessionDraft(title=title, scheduled_at=when, **kwargs))


def test_list_visible_sessions_applies_visibility_rules(db, make_user) -> None:
    planner = make_user("planner")
    member = make_user("basic")
    outsider = make_user("basic")

    public = _create(db, planner, title="Public", when="2099-06-01T16:00:00Z")
    private_invited = _create(
        db,
        planner,
        title="Invited",
        when="2099-06-02T16:00:00Z",
        visibility="private",
        guest_ids=[member.id],
    )
    private_hidden = _create(db, planner, title="Hidden", when="2099-06-03T16:00:00Z", visibility="private")

    assert [item.id for item in list_visible_sessions(db, member)] == [private_invited.id, public.id]
    assert [item.id for item in list_visible_sessions(db, outsider)] == [public.id]
    assert {item.id for item in list_visible_sessions(db, planner)} == {
        public.id,
        private_invited.id,
        private_hidden.id,
    }


def test_list_visible_sessions_filters_by_window_and_tag(db, make_user) -> None:
    planner = make_user("planner")
    tag = create_tag(db, planner, name="Rust")
    early = _create(db, planner, title="Early", when="2099-01-10T10:00:00Z", tag_ids=[tag.id])
    late = _create(db, planner, title="Late", when="2099-02-10T10:00:00Z")

    window = list_visible_sessions(
        db,
        planner,
        starts_after=datetime(2099, 2, 1, tzinfo=timezone.utc),
        starts_before=datetime(2099, 3, 1, tzinfo=timezone.utc),
    )
    assert [item.id for item in window] == [late.id]
    assert [item.id for item in list_visible_sessions(db, planner, tag_id=tag.id)] == [early.id]


def test_private_session_detail_is_forbidden_for_outsiders(db, make_user) -> None:
    planner = make_user("planner")
    outsider = make_user("basic")
    hidden = _create(db, planner, title="Hidden", visibility="private")

    with pytest.raises(Forbidden):
        get_session_detail(db, outsider, hidden.id)
    with pytest.raises(NotFound):
        get_session_detail(db, outsider, "missing-session")

    detail = get_session_detail(db, planner, hidden.id)
    assert detail.can_edit is True
    assert detail.interest_count == 0


def test_past_session_freezes_title_and_datetime(db, make_user) -> None:
    planner = make_user("planner")
    past = _create(db, planner, title="Retro", when="2001-01-01T10:00:00Z")

    with pytest.raises(ValidationError):
        update_session(db, planner, past.id, SessionChanges(title="Renamed"))
    with pytest.raises(ValidationError):
        update_session(db, planner, past.id, SessionChanges(scheduled_at="2001-01-02T10:00:00Z"))

    updated = update_session(
        db,
        planner,
        past.id,
        SessionChanges(title="Retro", recording_url="https://videos.example/retro"),
    )
    assert updated.title == "Retro"
    assert updated.recording_url == "https://videos.example/retro"


def test_update_replaces_tags_and_switching_public_drops_guests(db, make_user) -> None:
    planner = make_user("planner")
    guest = make_user("basic")
    first = create_tag(db, planner, name="Rust")
    second = create_tag(db, planner, name="Go")
    scheduled = _create(
        db,
        planner,
        title="Private talk",
        visibility="private",
        tag_ids=[first.id],
        guest_ids=[guest.id],
    )

    update_session(db, planner, scheduled.id, SessionChanges(tag_ids=[second.id]))
    assert [tag.id for tag in tags_for(db, scheduled.id)] == [second.id]
    assert guest_ids_for(db, scheduled.id) == [guest.id]

    update_session(db, planner, scheduled.id, SessionChanges(visibility="public", title="Open talk"))
    assert guest_ids_for(db, scheduled.id) == []
    assert scheduled.title == "Open talk"


def test_owner_may_edit_but_others_may_not(db, make_user) -> None:
    planner = make_user("planner")
    requester = make_user("basic")
    stranger = make_user("basic")
    scheduled = _create(db, planner, title="Talk")

    with pytest.raises(Forbidden):
        update_session(db, stranger, scheduled.id, SessionChanges(title="Mine now"))
    with pytest.raises(Forbidden):
        delete_session(db, requester, scheduled.id)


def test_delete_session_removes_dependent_rows(db, make_user) -> None:
    planner = make_user("planner")
    member = make_user("basic")
    tag = create_tag(db, planner, name="Rust")
    scheduled = _create(db, planner, title="Doomed", tag_ids=[tag.id])
    toggle_interest(db, member, scheduled.id)
    add_comment(db, member, scheduled.id, "See you there")

    delete_session(db, planner, scheduled.id)

    for model in (SessionTag, SessionInterest, SessionComment):
        assert db.scalar(select(func.count()).select_from(model)) == 0
    with pytest.raises(NotFound):
        get_session_detail(db, planner, scheduled.id)
    # Tags are global and outlive the session.
    assert [item.id for item in list_tags(db)] == [tag.id]


def test_tags_are_listed_by_name(db, make_user) -> None:
    member = make_user("basic")
    create_tag(db, member, name="Zig")
    create_tag(db, member, name="Ada")

    assert [tag.name for tag in list_tags(db)] == ["Ada", "Zig"]
    with pytest.raises(ValidationError):
        create_tag(db, member, name="Bad", color="blue")


def test_list_visible_sessions_filters_by_text(db, make_user) -> None:
    planner = make_user("planner")
    outsider = make_user("basic")
    intro = _create(db, planner, title="Intro to Rust", description="Ownership and borrowing")
    generics = _create(
        db,
        planner,
        title="Go generics",
        when="2099-06-02T16:00:00Z",
        description="Compared with RUST traits",
    )
    _create(db, planner, title="Rust internals", when="2099-06-03T16:00:00Z", visibility="private")

    assert [item.id for item in list_visible_sessions(db, outsider, q="  rust ")] == [generics.id, intro.id]
    assert [item.id for item in list_visible_sessions(db, outsider, q="GENERICS")] == [generics.id]
    assert list_visible_sessions(db, outsider, q="%") == []
    assert len(list_visible_sessions(db, outsider, q="   ")) == 2


def test_session_stats_follow_the_visible_set(db, make_user) -> None:
    admin = make_user("admin")
    planner = make_user("planner")
    member = make_user("basic")
    other = make_user("basic")

    _create(db, planner, title="Upcoming", when="2099-06-01T16:00:00Z")
    _create(db, planner, title="Done", when="2001-06-01T16:00:00Z")
    _create(db, planner, title="Invited", when="2099-06-02T16:00:00Z", visibility="private", guest_ids=[member.id])
    _create(db, planner, title="Hidden", when="2099-06-03T16:00:00Z", visibility="private")
    for requester in (member, other):
        submit_request(
            db,
            requester,
            title="Proposal",
            description="Something worth sharing",
            requested_datetime="2099-07-01T16:00:00Z",
        )

    member_stats = session_stats(db, member)
    assert member_stats.total == len(list_visible_sessions(db, member)) == 3
    assert (member_stats.upcoming, member_stats.completed) == (2, 1)
    assert member_stats.mine == 0
    assert member_stats.pending_requests == 1
    assert member_stats.users is None

    planner_stats = session_stats(db, planner)
    assert (planner_stats.total, planner_stats.upcoming, planner_stats.completed) == (4, 3, 1)
    assert planner_stats.mine == 4
    assert planner_stats.pending_requests == 2
    assert planner_stats.users is None

    admin_stats = session_stats(db, admin)
    assert admin_stats.total == 4
    assert admin_stats.mine == 0
    assert admin_stats.users == 4
