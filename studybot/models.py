"""Data models for the StudyBot backend."""

import datetime
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant"]
FeedbackType = Literal["positive", "negative"]
ChatMessage = dict[str, str]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string."""  # noqa: DOC201
    return datetime.datetime.now(tz=datetime.UTC).isoformat()


def as_utc(moment: datetime.datetime | None = None) -> datetime.datetime:
    """Return ``moment`` in UTC, or the current time if it is None.

    Naive values are taken as local time, as ``datetime.astimezone`` does.

    Returns:
        An aware UTC datetime.
    """
    if moment is None:
        return datetime.datetime.now(tz=datetime.UTC)
    return moment.astimezone(datetime.UTC)


@dataclass(frozen=True)
class ChatTurn:
    """A single message of a conversation."""

    role: Role
    content: str
    timestamp: str = field(default_factory=utc_timestamp)

    def as_message(self) -> ChatMessage:
        """Render the turn as a chat-completion message.

        Returns:
            Mapping with ``role`` and ``content`` keys.
        """
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class RetrievedDocument:
    """A scored search hit from the knowledge base."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pass through the RAG pipeline."""

    answer_text: str
    tokens_used: int
    latency_ms: int
    sources_used: list[str]
    relevant_doc_count: int
    has_relevant_context: bool
    reformulated_query: str
    retrieval_failed: bool = False


@dataclass(frozen=True)
class SamplingParams:
    """Sampling parameters for a chat completion call."""

    temperature: float = 0.4
    max_tokens: int = 500
    top_p: float = 0.9
    frequency_penalty: float = 0.3
    presence_penalty: float = 0.2

    def as_kwargs(self) -> dict[str, float | int]:
        """Return the parameters as keyword arguments for the completion API.

        Returns:
            Mapping of API parameter names to values.
        """
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }


@dataclass(frozen=True)
class Completion:
    """Raw text returned by the completion service."""

    text: str
    tokens_used: int
    latency_ms: int
    model: str


@dataclass
class DocumentChunk:
    """Represents a chunk of text from a knowledge-base document."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None


@dataclass
class VectorPoint:
    """A vector with its payload, ready to be written to a search backend."""

    point_id: str
    vector: np.ndarray
    payload: dict[str, Any]


@dataclass(frozen=True)
class IngestionReport:
    """Summary of a document written to the knowledge base."""

    document_id: str
    filename: str
    chunks_count: int


@dataclass(frozen=True)
class SystemPrompt:
    """A versioned persona/system prompt."""

    id: int
    prompt_id: str
    content: str
    version: str
    title: str | None
    description: str | None
    created_at: str
    created_by: str
    is_active: bool
    character_count: int
    word_count: int
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class Feedback:
    """A student rating attached to an assistant message."""

    feedback_id: str
    message_id: str
    session_id: str
    type: FeedbackType
    comment: str | None
    timestamp: str


@dataclass
class StoredMessage:
    """A persisted conversation message with its feedback."""

    message_id: str
    session_id: str
    role: Role
    content: str
    timestamp: str
    metadata: dict[str, Any] | None = None
    tokens_used: int | None = None
    feedbacks: list[Feedback] = field(default_factory=list)


@dataclass(frozen=True)
class ConversationSession:
    """Session row of the conversation store."""

    session_id: str
    user_identifier: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: str
    last_activity: str
    is_active: bool


@dataclass(frozen=True)
class ConversationSummary:
    """One line of the admin conversation listing."""

    session_id: str
    user_identifier: str | None
    ip_address: str | None
    start_time: str
    last_activity: str
    message_count: int
    positive_feedback_count: int
    negative_feedback_count: int
    is_active: bool


@dataclass(frozen=True)
class ChatReply:
    """Answer returned to the student for one message."""

    session_id: str
    message_id: str
    answer: str
    tokens_used: int
    latency_ms: int
    sources: list[str]
    relevant_doc_count: int
    has_relevant_context: bool


@dataclass(frozen=True)
class AnalyticsStats:
    """Token usage and cost figures for the admin dashboard."""

    total_tokens: int
    today_tokens: int
    month_tokens: int
    last_month_tokens: int
    avg_tokens_per_conversation: int
    estimated_monthly_cost: float
    last_month_cost: float


@dataclass(frozen=True)
class MonthlyUsage:
    """Usage aggregated over one calendar month."""

    month: str
    conversations: int
    messages: int
    tokens_used: int
    positive_feedbacks: int
    negative_feedbacks: int
    cost: float


@dataclass(frozen=True)
class DashboardStats:
    """Activity counters for the admin dashboard."""

    total_conversations: int
    today_messages: int
    today_feedbacks: int
    peak_hour_yesterday: str | None
    peak_hour_count: int
