"""Tests for versioned system prompts."""

import sqlite3
from unittest.mock import patch

import pytest

from studybot import ActivePromptDeletionError, PromptNotFoundError
from studybot.storage.prompts import next_version

from .conftest import TestConstants


@pytest.mark.parametrize(
    ("version", "expected"),
    [("1.0", "1.1"), ("1.9", "1.10"), ("2.3", "2.4"), ("garbage", "1.1"), ("3", "3.1")],
)
def test_next_version(version, expected):
    assert next_version(version) == expected


def test_create_activates_first_version(prompt_store):
    prompt = prompt_store.create("You are StudyBot.", "admin", title="Main")

    assert prompt.version == "1.0"
    assert prompt.is_active is True
    assert prompt.character_count == len("You are StudyBot.")
    assert prompt.word_count == 3
    assert prompt_store.get_active() == prompt


def test_update_creates_next_version_and_keeps_history(prompt_store):
    first = prompt_store.create("You are StudyBot.", "admin", title="Main")

    second = prompt_store.update(first.prompt_id, "You are StudyBot v2.", "editor")

    assert second.version == "1.1"
    assert second.title == "Main"
    assert second.created_by == "editor"
    assert prompt_store.get(first.prompt_id).is_active is False
    assert [p.version for p in prompt_store.list_prompts()] == ["1.1", "1.0"]


def test_exactly_one_active_prompt(prompt_store):
    first = prompt_store.create("v1", "admin")
    second = prompt_store.update(first.prompt_id, "v2", "admin")
    prompt_store.update(second.prompt_id, "v3", "admin")

    active = [p for p in prompt_store.list_prompts() if p.is_active]
    assert len(active) == 1
    assert active[0].content == "v3"


def test_restore_copies_old_version_as_new_one(prompt_store):
    first = prompt_store.create("original", "admin")
    prompt_store.update(first.prompt_id, "edited", "admin")

    restored = prompt_store.restore(first.prompt_id, "admin")

    assert restored.content == "original"
    assert restored.version == "1.2"
    assert restored.description == "Restored from v1.0"
    assert prompt_store.get_active_persona_text() == "original"
    assert len(prompt_store.list_prompts()) == 3


def test_update_unknown_prompt(prompt_store):
    with pytest.raises(PromptNotFoundError):
        prompt_store.update("prompt_missing", "text", "admin")


def test_empty_content_is_rejected(prompt_store):
    with pytest.raises(ValueError, match="cannot be empty"):
        prompt_store.create("   ", "admin")


def test_delete_inactive_version(prompt_store):
    first = prompt_store.create("v1", "admin")
    prompt_store.update(first.prompt_id, "v2", "admin")

    assert prompt_store.delete(first.prompt_id) is True
    assert prompt_store.get(first.prompt_id) is None
    assert prompt_store.delete("prompt_missing") is False


def test_active_version_cannot_be_deleted(prompt_store):
    prompt = prompt_store.create("v1", "admin")

    with pytest.raises(ActivePromptDeletionError):
        prompt_store.delete(prompt.prompt_id)


def test_persona_falls_back_to_default(prompt_store):
    assert prompt_store.get_active_persona_text() == TestConstants.TEST_PERSONA


def test_persona_falls_back_when_store_unreadable(prompt_store):
    with patch.object(
        prompt_store, "get_active", side_effect=sqlite3.OperationalError("locked")
    ):
        assert prompt_store.get_active_persona_text() == TestConstants.TEST_PERSONA


def test_stats(prompt_store):
    first = prompt_store.create("abcd", "admin")
    prompt_store.update(first.prompt_id, "abcdefgh", "admin")

    stats = prompt_store.get_stats()

    assert stats["total_prompts"] == 2
    assert stats["active_version"] == "1.1"
    assert stats["average_length"] == 6
    assert stats["last_updated"] is not None
