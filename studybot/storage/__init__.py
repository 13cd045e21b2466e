"""Relational storage: database wrapper, conversations, prompts and analytics."""

from .analytics import AnalyticsService
from .conversations import ConversationStore
from .database import Database
from .prompts import SystemPromptStore

__all__ = ["AnalyticsService", "ConversationStore", "Database", "SystemPromptStore"]
