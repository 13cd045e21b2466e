"""Tests for conversation persistence."""

import datetime
import sqlite3
from unittest.mock import patch

import pytest


def _seed_conversation(store, session_id, user_text="library hours?", answer="9h-22h"):
    store.create_or_update_session(session_id, user_identifier="student@school.edu")
    store.add_message(session_id, "user", user_text)
    return store.add_message(
        session_id, "assistant", answer, metadata={"chatbot": "studybot"}, tokens_used=50
    )


def _backdate(database, session_id, timestamp):
    database.execute(
        "UPDATE conversation_sessions SET created_at = ?, last_activity = ? "
        "WHERE session_id = ?",
        (timestamp, timestamp, session_id),
    )


def test_history_is_chronological(conversation_store):
    _seed_conversation(conversation_store, "s1")

    history = conversation_store.get_history("s1")

    assert [(turn.role, turn.content) for turn in history] == [
        ("user", "library hours?"),
        ("assistant", "9h-22h"),
    ]


def test_history_limit_keeps_most_recent(conversation_store):
    for i in range(6):
        conversation_store.add_message("s1", "user" if i % 2 == 0 else "assistant", f"m{i}")

    history = conversation_store.get_history("s1", limit=4)

    assert [turn.content for turn in history] == ["m2", "m3", "m4", "m5"]


def test_add_message_creates_session(conversation_store):
    conversation_store.add_message("fresh", "user", "hello")

    session, messages = conversation_store.get_full_conversation("fresh")

    assert session is not None
    assert session.session_id == "fresh"
    assert len(messages) == 1


def test_invalid_role_is_rejected(conversation_store):
    with pytest.raises(ValueError, match="Invalid message role"):
        conversation_store.add_message("s1", "system", "hello")


def test_add_exchange_stores_both_turns(conversation_store):
    message_id = conversation_store.add_exchange(
        "s1",
        "library hours?",
        "9h-22h",
        metadata={"chatbot": "studybot"},
        tokens_used=50,
        user_identifier="student@school.edu",
    )

    session, messages = conversation_store.get_full_conversation("s1")

    assert session.user_identifier == "student@school.edu"
    assert [(m.role, m.content) for m in messages] == [
        ("user", "library hours?"),
        ("assistant", "9h-22h"),
    ]
    assert messages[1].message_id == message_id
    assert messages[1].tokens_used == 50
    assert messages[0].tokens_used is None


def test_add_exchange_is_all_or_nothing(conversation_store):
    original = conversation_store._insert_message

    def failing_insert(conn, session_id, role, *args):
        if role == "assistant":
            msg = "database is locked"
            raise sqlite3.OperationalError(msg)
        return original(conn, session_id, role, *args)

    with (
        patch.object(conversation_store, "_insert_message", side_effect=failing_insert),
        pytest.raises(sqlite3.OperationalError),
    ):
        conversation_store.add_exchange("s1", "library hours?", "9h-22h")

    assert conversation_store.get_full_conversation("s1") == (None, [])


def test_session_update_keeps_known_details(conversation_store):
    conversation_store.create_or_update_session("s1", ip_address="10.0.0.1")
    conversation_store.create_or_update_session("s1", user_agent="Firefox")

    session, _ = conversation_store.get_full_conversation("s1")

    assert session.ip_address == "10.0.0.1"
    assert session.user_agent == "Firefox"


def test_message_metadata_roundtrip(conversation_store):
    message_id = _seed_conversation(conversation_store, "s1")

    message = conversation_store.get_message(message_id)

    assert message.role == "assistant"
    assert message.metadata == {"chatbot": "studybot"}
    assert message.tokens_used == 50
    assert conversation_store.get_message("msg_missing") is None


def test_feedback_is_attached_to_messages(conversation_store):
    message_id = _seed_conversation(conversation_store, "s1")
    conversation_store.add_feedback(message_id, "s1", "negative", "Wrong hours")

    _, messages = conversation_store.get_full_conversation("s1")

    assert messages[0].feedbacks == []
    assert len(messages[1].feedbacks) == 1
    assert messages[1].feedbacks[0].type == "negative"
    assert messages[1].feedbacks[0].comment == "Wrong hours"


def test_invalid_feedback_type(conversation_store):
    message_id = _seed_conversation(conversation_store, "s1")
    with pytest.raises(ValueError, match="Invalid feedback type"):
        conversation_store.add_feedback(message_id, "s1", "meh")


def test_unknown_conversation(conversation_store):
    assert conversation_store.get_full_conversation("nope") == (None, [])


def test_list_conversations_counts_and_filters(conversation_store):
    liked = _seed_conversation(conversation_store, "s1", "library hours?")
    disliked = _seed_conversation(conversation_store, "s2", "tuition fees?")
    _seed_conversation(conversation_store, "s3", "exam dates?")
    conversation_store.add_feedback(liked, "s1", "positive")
    conversation_store.add_feedback(disliked, "s2", "negative")

    summaries, total = conversation_store.list_conversations()
    assert total == 3
    by_id = {summary.session_id: summary for summary in summaries}
    assert by_id["s1"].message_count == 2
    assert by_id["s1"].positive_feedback_count == 1
    assert by_id["s2"].negative_feedback_count == 1

    summaries, total = conversation_store.list_conversations(feedback_type="positive")
    assert (total, [s.session_id for s in summaries]) == (1, ["s1"])

    summaries, total = conversation_store.list_conversations(feedback_type="none")
    assert (total, [s.session_id for s in summaries]) == (1, ["s3"])

    summaries, total = conversation_store.list_conversations(search="tuition")
    assert (total, [s.session_id for s in summaries]) == (1, ["s2"])


def test_list_conversations_pagination_and_dates(conversation_store, database):
    for session_id, day in (("old", "2024-01-10"), ("mid", "2024-02-10"), ("new", "2024-03-10")):
        _seed_conversation(conversation_store, session_id)
        _backdate(database, session_id, f"{day}T12:00:00+00:00")

    summaries, total = conversation_store.list_conversations(limit=2)
    assert total == 3
    assert [s.session_id for s in summaries] == ["new", "mid"]

    summaries, _ = conversation_store.list_conversations(limit=2, offset=2)
    assert [s.session_id for s in summaries] == ["old"]

    summaries, total = conversation_store.list_conversations(
        date_from="2024-02-01", date_to="2024-02-28"
    )
    assert (total, [s.session_id for s in summaries]) == (1, ["mid"])


def test_delete_conversation_removes_everything(conversation_store, database):
    message_id = _seed_conversation(conversation_store, "s1")
    conversation_store.add_feedback(message_id, "s1", "positive")

    assert conversation_store.delete_conversation("s1") is True
    assert conversation_store.delete_conversation("s1") is False
    assert database.query("SELECT * FROM conversation_messages") == []
    assert database.query("SELECT * FROM conversation_feedbacks") == []


def test_cleanup_old_conversations(conversation_store, database):
    _seed_conversation(conversation_store, "stale")
    _seed_conversation(conversation_store, "recent")
    now = datetime.datetime(2024, 6, 30, tzinfo=datetime.UTC)
    _backdate(database, "stale", "2024-05-01T00:00:00+00:00")
    _backdate(database, "recent", "2024-06-29T00:00:00+00:00")

    deleted = conversation_store.cleanup_old_conversations(days_old=30, now=now)

    assert deleted == 1
    assert conversation_store.get_full_conversation("stale") == (None, [])
    assert conversation_store.get_full_conversation("recent")[0] is not None


def test_cleanup_cutoff_ignores_caller_timezone(conversation_store, database):
    _seed_conversation(conversation_store, "recent")
    _backdate(database, "recent", "2024-05-31T01:00:00+00:00")
    now = datetime.datetime(2024, 6, 30, tzinfo=datetime.UTC).astimezone(
        datetime.timezone(datetime.timedelta(hours=2))
    )

    deleted = conversation_store.cleanup_old_conversations(days_old=30, now=now)

    assert deleted == 0
    assert conversation_store.get_full_conversation("recent")[0] is not None


def test_stats(conversation_store):
    message_id = _seed_conversation(conversation_store, "s1")
    conversation_store.add_feedback(message_id, "s1", "positive")

    stats = conversation_store.get_stats()

    assert stats["sessions"] == 1
    assert stats["messages"] == 2
    assert stats["feedbacks"] == 1
    assert stats["active_conversations"] == 1
