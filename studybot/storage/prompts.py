"""Versioned persona/system prompts with a single active version."""

from __future__ import annotations

import json
import sqlite3
from typing import TYPE_CHECKING, Any

from studybot.config import config
from studybot.errors import ActivePromptDeletionError, PromptNotFoundError
from studybot.models import SystemPrompt, utc_timestamp

from .conversations import new_id

if TYPE_CHECKING:
    from .database import Database

logger = config.get_logger(__name__)

INITIAL_VERSION = "1.0"
DEFAULT_TITLE = "System prompt"
DEFAULT_DESCRIPTION = "StudyBot system prompt"


def next_version(version: str) -> str:
    """Bump the minor part of a ``major.minor`` version.

    Unparseable parts fall back to major 1 and minor 0.

    Returns:
        The next version string.
    """
    major_part, _, minor_part = version.partition(".")
    try:
        major = int(major_part)
    except ValueError:
        major = 1
    try:
        minor = int(minor_part)
    except ValueError:
        minor = 0
    return f"{major}.{minor + 1}"


class SystemPromptStore:
    """CRUD and versioning of system prompts.

    Every write creates a new row and makes it the only active one, so the
    full history stays available for restore.
    """

    def __init__(self, database: Database, default_persona: str | None = None) -> None:
        """Initialize the store.

        Args:
            database: Initialised relational store.
            default_persona: Persona used when no prompt is active. If None,
                uses config.DEFAULT_PERSONA.
        """
        self.db = database
        self.default_persona = default_persona or config.DEFAULT_PERSONA

    def get_active(self) -> SystemPrompt | None:
        """Return the active prompt, if any."""  # noqa: DOC201
        row = self.db.query_one(
            "SELECT * FROM system_prompts WHERE is_active = 1 "
            "ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        return self._from_row(row) if row else None

    def get_active_persona_text(self) -> str:
        """Return the persona text fed to the pipeline.

        Falls back to the default persona when no prompt is active or the
        store cannot be read.

        Returns:
            Non-empty persona text.
        """
        try:
            active = self.get_active()
        except sqlite3.Error as exc:
            logger.warning("Could not load active prompt, using default: %s", exc)
            return self.default_persona

        if active is None or not active.content.strip():
            logger.warning("No active system prompt, using default persona")
            return self.default_persona
        return active.content

    def list_prompts(self) -> list[SystemPrompt]:
        """Return every version, newest first."""  # noqa: DOC201
        rows = self.db.query(
            "SELECT * FROM system_prompts ORDER BY created_at DESC, id DESC"
        )
        return [self._from_row(row) for row in rows]

    def get(self, prompt_id: str) -> SystemPrompt | None:
        """Return one version by its prompt id."""  # noqa: DOC201
        row = self.db.query_one(
            "SELECT * FROM system_prompts WHERE prompt_id = ?", (prompt_id,)
        )
        return self._from_row(row) if row else None

    def create(
        self,
        content: str,
        created_by: str,
        title: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SystemPrompt:
        """Create a first version (1.0) and activate it.

        Returns:
            The stored prompt.
        """
        prompt_id = self._insert_active(
            content=content,
            version=INITIAL_VERSION,
            title=title or DEFAULT_TITLE,
            description=description or DEFAULT_DESCRIPTION,
            created_by=created_by,
            metadata=metadata,
        )
        logger.info("Created prompt %s v%s by %s", prompt_id, INITIAL_VERSION, created_by)
        return self._require(prompt_id)

    def update(  # noqa: PLR0913
        self,
        prompt_id: str,
        content: str,
        created_by: str,
        title: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        change_summary: str | None = None,
    ) -> SystemPrompt:
        """Store edited content as the next minor version of ``prompt_id``.

        Returns:
            The new active version.
        """
        current = self._require(prompt_id)
        version = next_version(current.version)
        new_prompt_id = self._insert_active(
            content=content,
            version=version,
            title=title or current.title,
            description=description or current.description,
            created_by=created_by,
            metadata=metadata,
        )
        logger.info("Updated prompt to %s v%s by %s", new_prompt_id, version, created_by)
        if change_summary:
            logger.info("Change summary: %s", change_summary)
        return self._require(new_prompt_id)

    def restore(self, prompt_id: str, created_by: str) -> SystemPrompt:
        """Re-activate an old version by copying it as a new version.

        The new version number follows the currently active one.

        Returns:
            The new active version.
        """
        source = self._require(prompt_id)
        active = self.get_active()
        version = next_version(active.version) if active else INITIAL_VERSION
        new_prompt_id = self._insert_active(
            content=source.content,
            version=version,
            title=source.title,
            description=f"Restored from v{source.version}",
            created_by=created_by,
            metadata=source.metadata,
        )
        logger.info(
            "Restored v%s as %s v%s by %s",
            source.version,
            new_prompt_id,
            version,
            created_by,
        )
        return self._require(new_prompt_id)

    def delete(self, prompt_id: str) -> bool:
        """Delete an inactive version.

        Returns:
            False if the prompt does not exist.

        Raises:
            ActivePromptDeletionError: If the prompt is the active one.
        """
        prompt = self.get(prompt_id)
        if prompt is None:
            return False
        if prompt.is_active:
            msg = f"Cannot delete the active prompt {prompt_id}"
            raise ActivePromptDeletionError(msg)

        self.db.execute("DELETE FROM system_prompts WHERE prompt_id = ?", (prompt_id,))
        logger.info("Deleted prompt %s", prompt_id)
        return True

    def get_stats(self) -> dict[str, Any]:
        """Summarise the prompt history.

        Returns:
            Mapping with total_prompts, active_version, last_updated and
            average_length.
        """
        row = self.db.query_one(
            "SELECT COUNT(*) AS total, AVG(character_count) AS avg_length, "
            "MAX(created_at) AS last_updated FROM system_prompts"
        )
        active = self.get_active()
        return {
            "total_prompts": int(row["total"]) if row else 0,
            "active_version": active.version if active else None,
            "last_updated": row["last_updated"] if row else None,
            "average_length": round(row["avg_length"] or 0) if row else 0,
        }

    def _insert_active(  # noqa: PLR0913
        self,
        *,
        content: str,
        version: str,
        title: str | None,
        description: str | None,
        created_by: str,
        metadata: dict[str, Any] | None,
    ) -> str:
        """Deactivate all prompts and insert a new active one.

        Returns:
            The new prompt id.

        Raises:
            ValueError: If the content is blank.
        """
        if not content.strip():
            msg = "Prompt content cannot be empty"
            raise ValueError(msg)

        prompt_id = new_id("prompt")
        with self.db.transaction() as conn:
            conn.execute("UPDATE system_prompts SET is_active = 0")
            conn.execute(
                """
                INSERT INTO system_prompts (
                    prompt_id, content, version, title, description, created_at,
                    created_by, is_active, character_count, word_count, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
                """,
                (
                    prompt_id,
                    content,
                    version,
                    title,
                    description,
                    utc_timestamp(),
                    created_by,
                    len(content),
                    len(content.split()),
                    json.dumps(metadata) if metadata else None,
                ),
            )
        return prompt_id

    def _require(self, prompt_id: str) -> SystemPrompt:
        prompt = self.get(prompt_id)
        if prompt is None:
            msg = f"System prompt not found: {prompt_id}"
            raise PromptNotFoundError(msg)
        return prompt

    @staticmethod
    def _from_row(row: sqlite3.Row) -> SystemPrompt:
        return SystemPrompt(
            id=int(row["id"]),
            prompt_id=row["prompt_id"],
            content=row["content"],
            version=row["version"],
            title=row["title"],
            description=row["description"],
            created_at=row["created_at"],
            created_by=row["created_by"],
            is_active=bool(row["is_active"]),
            character_count=int(row["character_count"]),
            word_count=int(row["word_count"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        )
