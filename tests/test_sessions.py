from datetime import datetime, timedelta, timezone

from api.services.sessions import (
    ConversationTurn,
    Role,
    SessionState,
    SessionStore,
    format_transcript,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

def turn(text: str, role: Role = Role.USER, at: datetime = T0) -> ConversationTurn:
    return ConversationTurn(role=role, content=text, timestamp=at)


def test_first_turn_creates_session():
    store = SessionStore()
    session = store.append("u1", turn("hello"))

    assert store.get("u1") is session
    assert session.state == SessionState.ACTIVE
    assert session.last_activity == T0
    assert [t.content for t in session.turns] == ["hello"]


def test_last_activity_never_moves_backwards():
    store = SessionStore()
    store.append("u1", turn("second", at=T0 + timedelta(seconds=5)))
    store.append("u1", turn("first", at=T0))

    assert store.get("u1").last_activity == T0 + timedelta(seconds=5)


def test_begin_finalize_is_check_and_set():
    store = SessionStore()
    store.append("u1", turn("hello"))

    session = store.begin_finalize("u1")
    assert session is not None
    assert session.state == SessionState.FINALIZING
    assert store.begin_finalize("u1") is None
    assert store.begin_finalize("nobody") is None


def test_begin_finalize_requires_the_current_deadline():
    store = SessionStore()
    session = store.append("u1", turn("hello"))
    fired, current = object(), object()
    session.pending_timer = current

    assert store.begin_finalize("u1", fired) is None
    assert session.state == SessionState.ACTIVE
    assert store.begin_finalize("u1", current) is session
    assert session.state == SessionState.FINALIZING


def test_append_during_finalize_starts_new_session():
    store = SessionStore()
    old = store.append("u1", turn("before"))
    store.begin_finalize("u1")

    new = store.append("u1", turn("after"))

    assert new is not old
    assert [t.content for t in old.turns] == ["before"]
    assert [t.content for t in new.turns] == ["after"]

    store.close(old)
    assert store.get("u1") is new
    assert old.state == SessionState.CLOSED


def test_close_reclaims_entry_once():
    store = SessionStore()
    session = store.append("u1", turn("hello"))
    store.begin_finalize("u1")

    store.close(session)
    store.close(session)

    assert store.get("u1") is None
    assert len(store) == 0


def test_append_to_rejects_finalizing_session():
    store = SessionStore()
    session = store.append("u1", turn("hello"))

    assert store.append_to(session, turn("Hi!", role=Role.ASSISTANT)) is True
    store.begin_finalize("u1")
    assert store.append_to(session, turn("late", role=Role.ASSISTANT)) is False
    assert len(session.turns) == 2


def test_replace_prefix_swaps_oldest_turns():
    store = SessionStore()
    for i in range(4):
        session = store.append("u1", turn(f"t{i}"))
    prefix = session.turns[:2]
    summary = turn("summary", role=Role.SYSTEM)

    assert store.replace_prefix(session, prefix, summary) is True
    assert [t.content for t in session.turns] == ["summary", "t2", "t3"]


def test_replace_prefix_refuses_changed_head():
    store = SessionStore()
    for i in range(4):
        session = store.append("u1", turn(f"t{i}"))
    stale_prefix = [turn("t0"), turn("t1")]

    assert store.replace_prefix(session, stale_prefix, turn("summary", role=Role.SYSTEM)) is False
    assert len(session.turns) == 4


def test_format_transcript():
    turns = [
        turn("Summary so far", role=Role.SYSTEM),
        turn("I need a fence repaired"),
        turn("Happy to help!", role=Role.ASSISTANT),
    ]

    assert format_transcript(turns) == (
        "system: Summary so far\n"
        "user: I need a fence repaired\n"
        "assistant: Happy to help!"
    )
    assert turns[1].as_message() == {"role": "user", "content": "I need a fence repaired"}
