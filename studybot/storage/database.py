"""SQLite access shared by the conversation, prompt and analytics stores."""

from __future__ import annotations

import sqlite3
import time
from contextlib import closing, contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from studybot.config import config
from studybot.retry import RetryPolicy, with_retry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

logger = config.get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversation_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT UNIQUE NOT NULL,
    user_identifier TEXT,
    ip_address TEXT,
    user_agent TEXT,
    created_at TEXT NOT NULL,
    last_activity TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_sessions_created_at
    ON conversation_sessions(created_at);
CREATE INDEX IF NOT EXISTS idx_sessions_last_activity
    ON conversation_sessions(last_activity);

CREATE TABLE IF NOT EXISTS conversation_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id TEXT UNIQUE NOT NULL,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    metadata TEXT,
    tokens_used INTEGER,
    FOREIGN KEY (session_id) REFERENCES conversation_sessions (session_id)
        ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_messages_session
    ON conversation_messages(session_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp
    ON conversation_messages(timestamp);

CREATE TABLE IF NOT EXISTS conversation_feedbacks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feedback_id TEXT UNIQUE NOT NULL,
    message_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('positive', 'negative')),
    comment TEXT,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES conversation_messages (message_id)
        ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_feedbacks_session
    ON conversation_feedbacks(session_id);
CREATE INDEX IF NOT EXISTS idx_feedbacks_timestamp
    ON conversation_feedbacks(timestamp);

CREATE TABLE IF NOT EXISTS system_prompts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    prompt_id TEXT UNIQUE NOT NULL,
    content TEXT NOT NULL,
    version TEXT NOT NULL,
    title TEXT,
    description TEXT,
    created_at TEXT NOT NULL,
    created_by TEXT NOT NULL DEFAULT 'system',
    is_active INTEGER NOT NULL DEFAULT 0,
    character_count INTEGER NOT NULL,
    word_count INTEGER NOT NULL,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_prompts_active ON system_prompts(is_active);
"""


class Database:
    """Opens a short-lived connection per operation on a SQLite file.

    Statements are retried on ``sqlite3.OperationalError`` (locked or busy
    database) according to the retry policy.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the database wrapper.

        Args:
            db_path: SQLite file. If None, uses config.DATABASE_PATH.
            retry_policy: Retry policy for statements. If None, uses
                config.DB_MAX_RETRIES attempts and config.DB_RETRY_DELAY.
            sleep: Wait function between attempts.
        """
        self.db_path = Path(db_path or config.DATABASE_PATH)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.DB_MAX_RETRIES,
            base_delay=config.DB_RETRY_DELAY,
            retry_on=(sqlite3.OperationalError,),
        )
        retry = with_retry(self.retry_policy, sleep=sleep)
        self._execute = retry(self._execute_once)
        self._fetch = retry(self._fetch_once)

    def connect(self) -> sqlite3.Connection:
        """Open a connection with row access by column name.

        Returns:
            A new connection; the caller closes it.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run several statements atomically.

        Commits when the block exits normally, rolls back and re-raises
        otherwise.

        Yields:
            An open connection inside a transaction.
        """
        with closing(self.connect()) as conn:
            try:
                yield conn
            except Exception:
                conn.rollback()
                logger.exception("Transaction rolled back")
                raise
            else:
                conn.commit()

    def _execute_once(self, sql: str, params: Sequence[Any]) -> int:
        with closing(self.connect()) as conn:
            cursor = conn.execute(sql, params)
            conn.commit()
            return cursor.rowcount

    def _fetch_once(self, sql: str, params: Sequence[Any]) -> list[sqlite3.Row]:
        with closing(self.connect()) as conn:
            return conn.execute(sql, params).fetchall()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement.

        Returns:
            Number of affected rows.
        """
        return self._execute(sql, params)

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a read statement.

        Returns:
            All result rows.
        """
        return self._fetch(sql, params)

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Run a read statement expected to return at most one row.

        Returns:
            The first row, or None.
        """
        rows = self._fetch(sql, params)
        return rows[0] if rows else None

    def initialize(self) -> None:
        """Create the tables and indexes if missing."""
        with closing(self.connect()) as conn:
            conn.executescript(SCHEMA)
            conn.commit()
        logger.info("Database schema ready at %s", self.db_path)

    def test_connection(self) -> bool:
        """Run a trivial query.

        Returns:
            True if the database answered.
        """
        try:
            self._fetch_once("SELECT 1", ())
        except sqlite3.Error:
            logger.exception("Database connection test failed")
            return False
        logger.info("Database connection OK")
        return True
