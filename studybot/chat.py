"""Session-level chat service tying the pipeline to the conversation store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .models import ChatReply
from .storage.conversations import new_id

if TYPE_CHECKING:
    from .models import ChatTurn, FeedbackType
    from .pipeline import RAGPipeline
    from .storage import ConversationStore

logger = config.get_logger(__name__)


class ChatService:
    """Handles one student message end to end."""

    def __init__(
        self,
        pipeline: RAGPipeline,
        conversations: ConversationStore,
        history_limit: int | None = None,
    ) -> None:
        """Initialize the chat service.

        Args:
            pipeline: Answer pipeline.
            conversations: Store for sessions, messages and feedback.
            history_limit: Turns loaded from the store per request. If None,
                uses config.SESSION_HISTORY_LIMIT.
        """
        self.pipeline = pipeline
        self.conversations = conversations
        self.history_limit = (
            config.SESSION_HISTORY_LIMIT if history_limit is None else history_limit
        )

    @staticmethod
    def new_session_id() -> str:
        """Return a fresh session id."""  # noqa: DOC201
        return new_id("session")

    def send_message(  # noqa: PLR0913
        self,
        message: str,
        session_id: str | None = None,
        profile: str | None = None,
        user_identifier: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ChatReply:
        """Answer a message and persist both turns.

        Both turns are written in one transaction after the pipeline
        succeeds, so a failed request never leaves a dangling user turn.

        Args:
            message: Student message.
            session_id: Existing session id. A new one is created if None.
            profile: Chatbot profile. If None, uses config.DEFAULT_CHATBOT.
            user_identifier: Optional student identifier.
            ip_address: Optional client address.
            user_agent: Optional client user agent.

        Returns:
            The answer with its message id and pipeline figures.

        Raises:
            ValueError: If the message is empty.
        """
        if not isinstance(message, str) or not message.strip():
            msg = "Message is required and must be a non-empty string"
            raise ValueError(msg)

        message = message.strip()
        session_id = session_id or self.new_session_id()
        profile = profile or config.DEFAULT_CHATBOT

        history = self.conversations.get_history(session_id, self.history_limit)
        result = self.pipeline.answer(message, history, profile)

        message_id = self.conversations.add_exchange(
            session_id,
            message,
            result.answer_text,
            metadata={
                "chatbot": profile,
                "reformulated_query": result.reformulated_query,
                "relevant_doc_count": result.relevant_doc_count,
                "has_relevant_context": result.has_relevant_context,
                "retrieval_failed": result.retrieval_failed,
                "latency_ms": result.latency_ms,
            },
            tokens_used=result.tokens_used,
            user_identifier=user_identifier,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        logger.info(
            "Session %s answered in %d ms (%d tokens)",
            session_id,
            result.latency_ms,
            result.tokens_used,
        )
        return ChatReply(
            session_id=session_id,
            message_id=message_id,
            answer=result.answer_text,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
            sources=result.sources_used,
            relevant_doc_count=result.relevant_doc_count,
            has_relevant_context=result.has_relevant_context,
        )

    def submit_feedback(
        self,
        message_id: str,
        session_id: str,
        feedback_type: FeedbackType,
        comment: str | None = None,
    ) -> str:
        """Rate an assistant answer.

        Returns:
            The feedback id.

        Raises:
            ValueError: If the message is unknown, belongs to another
                session or is not an assistant answer.
        """
        stored = self.conversations.get_message(message_id)
        if stored is None or stored.session_id != session_id:
            msg = f"Message {message_id} not found in session {session_id}"
            raise ValueError(msg)
        if stored.role != "assistant":
            msg = "Feedback can only be given on assistant messages"
            raise ValueError(msg)

        comment = comment.strip() if comment else None
        return self.conversations.add_feedback(
            message_id, session_id, feedback_type, comment or None
        )

    def get_history(self, session_id: str) -> list[ChatTurn]:
        """Return the stored turns of a session, oldest first."""  # noqa: DOC201
        return self.conversations.get_history(session_id, self.history_limit)

    def reset_session(self, session_id: str) -> bool:
        """Forget a session and everything stored with it.

        Returns:
            True if the session existed.
        """
        logger.info("Resetting session %s", session_id)
        return self.conversations.delete_conversation(session_id)
