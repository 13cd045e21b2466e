"""Persistence of chat sessions, messages and feedback."""

from __future__ import annotations

import datetime
import json
import uuid
from typing import TYPE_CHECKING, Any, Literal

from studybot.config import config
from studybot.models import (
    ChatTurn,
    ConversationSession,
    ConversationSummary,
    Feedback,
    FeedbackType,
    Role,
    StoredMessage,
    as_utc,
    utc_timestamp,
)

if TYPE_CHECKING:
    import sqlite3

    from .database import Database

logger = config.get_logger(__name__)

FeedbackFilter = Literal["positive", "negative", "none", "all"]
VALID_ROLES = {"user", "assistant"}
VALID_FEEDBACK_TYPES = {"positive", "negative"}

UPSERT_SESSION_SQL = """
    INSERT INTO conversation_sessions
        (session_id, user_identifier, ip_address, user_agent,
         created_at, last_activity)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(session_id) DO UPDATE SET
        last_activity = excluded.last_activity,
        user_identifier = COALESCE(excluded.user_identifier, user_identifier),
        ip_address = COALESCE(excluded.ip_address, ip_address),
        user_agent = COALESCE(excluded.user_agent, user_agent)
"""


def new_id(prefix: str) -> str:
    """Return a unique identifier such as ``msg_3f2a...``."""  # noqa: DOC201
    return f"{prefix}_{uuid.uuid4().hex}"


def _load_json(raw: str | None) -> dict[str, Any] | None:
    return json.loads(raw) if raw else None


class ConversationStore:
    """Reads and writes conversations in the relational store."""

    def __init__(self, database: Database) -> None:
        """Initialize the store on an already initialised database."""
        self.db = database

    def create_or_update_session(
        self,
        session_id: str,
        user_identifier: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Insert the session or refresh its activity and client details."""
        now = utc_timestamp()
        self.db.execute(
            UPSERT_SESSION_SQL,
            (session_id, user_identifier, ip_address, user_agent, now, now),
        )
        logger.debug("Session %s created or updated", session_id)

    def _insert_message(
        self,
        conn: sqlite3.Connection,
        session_id: str,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None,
        tokens_used: int | None,
    ) -> str:
        if role not in VALID_ROLES:
            msg = f"Invalid message role: {role}"
            raise ValueError(msg)

        message_id = new_id("msg")
        now = utc_timestamp()
        conn.execute(
            "INSERT OR IGNORE INTO conversation_sessions "
            "(session_id, created_at, last_activity) VALUES (?, ?, ?)",
            (session_id, now, now),
        )
        conn.execute(
            """
            INSERT INTO conversation_messages
                (message_id, session_id, role, content, timestamp,
                 metadata, tokens_used)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message_id,
                session_id,
                role,
                content,
                now,
                json.dumps(metadata) if metadata else None,
                tokens_used,
            ),
        )
        conn.execute(
            "UPDATE conversation_sessions SET last_activity = ? WHERE session_id = ?",
            (now, session_id),
        )
        return message_id

    def add_message(
        self,
        session_id: str,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
        tokens_used: int | None = None,
    ) -> str:
        """Append a message, creating the session if needed.

        Returns:
            The new message id.

        Raises:
            ValueError: If ``role`` is not user or assistant.
        """
        with self.db.transaction() as conn:
            message_id = self._insert_message(
                conn, session_id, role, content, metadata, tokens_used
            )
        logger.info("Message %s added to %s", message_id, session_id)
        return message_id

    def add_exchange(  # noqa: PLR0913
        self,
        session_id: str,
        user_text: str,
        answer: str,
        metadata: dict[str, Any] | None = None,
        tokens_used: int | None = None,
        user_identifier: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Store a question and its answer in a single transaction.

        Either both turns and the session update are written or none are.

        Args:
            session_id: Session the exchange belongs to.
            user_text: Student message.
            answer: Assistant answer.
            metadata: Pipeline details stored with the answer.
            tokens_used: Tokens spent on the answer.
            user_identifier: Optional student identifier.
            ip_address: Optional client address.
            user_agent: Optional client user agent.

        Returns:
            The id of the assistant message.
        """
        now = utc_timestamp()
        with self.db.transaction() as conn:
            conn.execute(
                UPSERT_SESSION_SQL,
                (session_id, user_identifier, ip_address, user_agent, now, now),
            )
            self._insert_message(conn, session_id, "user", user_text, None, None)
            message_id = self._insert_message(
                conn, session_id, "assistant", answer, metadata, tokens_used
            )
        logger.info("Exchange stored in %s as %s", session_id, message_id)
        return message_id

    def get_history(self, session_id: str, limit: int | None = None) -> list[ChatTurn]:
        """Return the most recent turns of a session, oldest first.

        Args:
            session_id: Session to read.
            limit: Maximum number of turns. If None, uses
                config.SESSION_HISTORY_LIMIT.

        Returns:
            Chronological chat turns.
        """
        limit = config.SESSION_HISTORY_LIMIT if limit is None else limit
        rows = self.db.query(
            """
            SELECT role, content, timestamp FROM (
                SELECT id, role, content, timestamp
                FROM conversation_messages
                WHERE session_id = ?
                ORDER BY timestamp DESC, id DESC
                LIMIT ?
            ) ORDER BY timestamp ASC, id ASC
            """,
            (session_id, limit),
        )
        return [
            ChatTurn(role=row["role"], content=row["content"], timestamp=row["timestamp"])
            for row in rows
        ]

    def get_message(self, message_id: str) -> StoredMessage | None:
        """Fetch one message without its feedback.

        Returns:
            The message, or None if unknown.
        """
        row = self.db.query_one(
            "SELECT * FROM conversation_messages WHERE message_id = ?",
            (message_id,),
        )
        return self._message_from_row(row) if row else None

    def add_feedback(
        self,
        message_id: str,
        session_id: str,
        feedback_type: FeedbackType,
        comment: str | None = None,
    ) -> str:
        """Record a rating on a message.

        Returns:
            The new feedback id.

        Raises:
            ValueError: If the feedback type is unknown.
        """
        if feedback_type not in VALID_FEEDBACK_TYPES:
            msg = f"Invalid feedback type: {feedback_type}"
            raise ValueError(msg)

        feedback_id = new_id("feedback")
        self.db.execute(
            """
            INSERT INTO conversation_feedbacks
                (feedback_id, message_id, session_id, type, comment, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (feedback_id, message_id, session_id, feedback_type, comment, utc_timestamp()),
        )
        logger.info("Feedback %s (%s) added to %s", feedback_id, feedback_type, message_id)
        return feedback_id

    def list_conversations(  # noqa: PLR0913
        self,
        limit: int = 20,
        offset: int = 0,
        search: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        feedback_type: FeedbackFilter = "all",
    ) -> tuple[list[ConversationSummary], int]:
        """List sessions for the admin view, most recently active first.

        Args:
            limit: Page size.
            offset: Rows to skip.
            search: Text that must appear in one of the session's messages.
            date_from: Earliest creation date, ``YYYY-MM-DD`` inclusive.
            date_to: Latest creation date, ``YYYY-MM-DD`` inclusive.
            feedback_type: Keep sessions with positive, negative or no feedback.

        Returns:
            The page of summaries and the total number of matching sessions.
        """
        clauses = ["1 = 1"]
        params: list[Any] = []

        if search and search.strip():
            clauses.append(
                "EXISTS (SELECT 1 FROM conversation_messages m "
                "WHERE m.session_id = cs.session_id AND m.content LIKE ?)"
            )
            params.append(f"%{search.strip()}%")
        if date_from:
            clauses.append("substr(cs.created_at, 1, 10) >= ?")
            params.append(date_from)
        if date_to:
            clauses.append("substr(cs.created_at, 1, 10) <= ?")
            params.append(date_to)
        if feedback_type in VALID_FEEDBACK_TYPES:
            clauses.append(
                "EXISTS (SELECT 1 FROM conversation_feedbacks f "
                "WHERE f.session_id = cs.session_id AND f.type = ?)"
            )
            params.append(feedback_type)
        elif feedback_type == "none":
            clauses.append(
                "NOT EXISTS (SELECT 1 FROM conversation_feedbacks f "
                "WHERE f.session_id = cs.session_id)"
            )

        where = " AND ".join(clauses)
        total_row = self.db.query_one(
            f"SELECT COUNT(*) AS total FROM conversation_sessions cs WHERE {where}",  # noqa: S608
            params,
        )
        total = int(total_row["total"]) if total_row else 0

        rows = self.db.query(
            f"""
            SELECT
                cs.session_id,
                cs.user_identifier,
                cs.ip_address,
                cs.created_at AS start_time,
                cs.last_activity,
                cs.is_active,
                (SELECT COUNT(*) FROM conversation_messages m
                 WHERE m.session_id = cs.session_id) AS message_count,
                (SELECT COUNT(*) FROM conversation_feedbacks f
                 WHERE f.session_id = cs.session_id AND f.type = 'positive')
                    AS positive_feedback_count,
                (SELECT COUNT(*) FROM conversation_feedbacks f
                 WHERE f.session_id = cs.session_id AND f.type = 'negative')
                    AS negative_feedback_count
            FROM conversation_sessions cs
            WHERE {where}
            ORDER BY cs.last_activity DESC
            LIMIT ? OFFSET ?
            """,  # noqa: S608
            [*params, limit, offset],
        )

        summaries = [
            ConversationSummary(
                session_id=row["session_id"],
                user_identifier=row["user_identifier"],
                ip_address=row["ip_address"],
                start_time=row["start_time"],
                last_activity=row["last_activity"],
                message_count=int(row["message_count"]),
                positive_feedback_count=int(row["positive_feedback_count"]),
                negative_feedback_count=int(row["negative_feedback_count"]),
                is_active=bool(row["is_active"]),
            )
            for row in rows
        ]
        logger.info("Listed %d/%d conversations", len(summaries), total)
        return summaries, total

    def get_full_conversation(
        self, session_id: str
    ) -> tuple[ConversationSession | None, list[StoredMessage]]:
        """Fetch a session with all its messages and their feedback.

        Returns:
            The session (None if unknown) and its messages, oldest first.
        """
        row = self.db.query_one(
            "SELECT * FROM conversation_sessions WHERE session_id = ?",
            (session_id,),
        )
        if row is None:
            return None, []

        session = ConversationSession(
            session_id=row["session_id"],
            user_identifier=row["user_identifier"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            created_at=row["created_at"],
            last_activity=row["last_activity"],
            is_active=bool(row["is_active"]),
        )

        messages = [
            self._message_from_row(message_row)
            for message_row in self.db.query(
                "SELECT * FROM conversation_messages WHERE session_id = ? "
                "ORDER BY timestamp ASC, id ASC",
                (session_id,),
            )
        ]
        by_id = {message.message_id: message for message in messages}
        for feedback_row in self.db.query(
            "SELECT * FROM conversation_feedbacks WHERE session_id = ? "
            "ORDER BY timestamp ASC, id ASC",
            (session_id,),
        ):
            message = by_id.get(feedback_row["message_id"])
            if message is not None:
                message.feedbacks.append(
                    Feedback(
                        feedback_id=feedback_row["feedback_id"],
                        message_id=feedback_row["message_id"],
                        session_id=feedback_row["session_id"],
                        type=feedback_row["type"],
                        comment=feedback_row["comment"],
                        timestamp=feedback_row["timestamp"],
                    )
                )
        return session, messages

    def delete_conversation(self, session_id: str) -> bool:
        """Delete a session with its messages and feedback in one transaction.

        Returns:
            True if the session existed.
        """
        with self.db.transaction() as conn:
            self._delete_sessions(conn, "session_id = ?", (session_id,))
            deleted = conn.execute(
                "DELETE FROM conversation_sessions WHERE session_id = ?",
                (session_id,),
            ).rowcount
        logger.info("Conversation %s deleted", session_id)
        return deleted > 0

    def cleanup_old_conversations(
        self,
        days_old: int = 30,
        now: datetime.datetime | None = None,
    ) -> int:
        """Delete sessions inactive for more than ``days_old`` days.

        Returns:
            Number of deleted sessions.
        """
        now = as_utc(now)
        cutoff = (now - datetime.timedelta(days=days_old)).isoformat()
        with self.db.transaction() as conn:
            self._delete_sessions(conn, "last_activity < ?", (cutoff,))
            deleted = conn.execute(
                "DELETE FROM conversation_sessions WHERE last_activity < ?",
                (cutoff,),
            ).rowcount
        logger.info("Deleted %d conversations older than %d days", deleted, days_old)
        return deleted

    def get_stats(self, now: datetime.datetime | None = None) -> dict[str, Any]:
        """Count sessions, messages and feedback.

        Returns:
            Mapping of counters plus oldest/newest session creation times.
        """
        now = as_utc(now)
        hour_ago = (now - datetime.timedelta(hours=1)).isoformat()
        row = self.db.query_one(
            """
            SELECT
                (SELECT COUNT(*) FROM conversation_sessions) AS sessions,
                (SELECT COUNT(*) FROM conversation_messages) AS messages,
                (SELECT COUNT(*) FROM conversation_feedbacks) AS feedbacks,
                (SELECT COUNT(*) FROM conversation_sessions
                 WHERE last_activity > ?) AS active_conversations,
                (SELECT MIN(created_at) FROM conversation_sessions)
                    AS oldest_conversation,
                (SELECT MAX(created_at) FROM conversation_sessions)
                    AS newest_conversation
            """,
            (hour_ago,),
        )
        return dict(row) if row else {}

    @staticmethod
    def _delete_sessions(
        conn: sqlite3.Connection, where: str, params: tuple[Any, ...]
    ) -> None:
        """Delete feedback and messages of the sessions matching ``where``."""
        sessions = f"SELECT session_id FROM conversation_sessions WHERE {where}"  # noqa: S608
        conn.execute(
            f"DELETE FROM conversation_feedbacks WHERE session_id IN ({sessions})",  # noqa: S608
            params,
        )
        conn.execute(
            f"DELETE FROM conversation_messages WHERE session_id IN ({sessions})",  # noqa: S608
            params,
        )

    @staticmethod
    def _message_from_row(row: sqlite3.Row) -> StoredMessage:
        return StoredMessage(
            message_id=row["message_id"],
            session_id=row["session_id"],
            role=row["role"],
            content=row["content"],
            timestamp=row["timestamp"],
            metadata=_load_json(row["metadata"]),
            tokens_used=row["tokens_used"],
        )
