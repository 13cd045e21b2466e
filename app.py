"""Web interface using Streamlit: student chat and admin pages."""

from dataclasses import dataclass

import streamlit as st

from studybot import (
    ActivePromptDeletionError,
    AnalyticsService,
    ChatService,
    ConversationStore,
    Database,
    EmbeddingService,
    GenerationError,
    KnowledgeBaseIngestor,
    QuotaExceededError,
    RAGPipeline,
    RateLimitedError,
    SystemPromptStore,
    get_vector_store,
)
from studybot.config import config

PROFILES = ("studybot", "bibliobot")
CONVERSATIONS_PAGE_SIZE = 20
MAX_PREVIEW_LENGTH = 200

config.setup_logging()
logger = config.get_logger(__name__)


@dataclass
class Services:
    """Backend objects shared by the pages."""

    chat: ChatService
    conversations: ConversationStore
    prompts: SystemPromptStore
    analytics: AnalyticsService
    ingestor: KnowledgeBaseIngestor


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "services": None,
            "session_id": None,
            "messages": [],
            "rated": set(),
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def reset_conversation() -> None:
        """Start a new chat session."""
        st.session_state.session_id = None
        st.session_state.messages = []
        st.session_state.rated = set()

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the backend services are initialized.

        Returns:
            bool: True once the services were built.
        """
        return st.session_state.get("services") is not None


def validate_configuration() -> bool:
    """Validate application configuration and show user feedback.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    try:
        config.validate()
    except ValueError as e:
        st.error(f"Configuration Error: {e}")
        return False
    else:
        return True


def initialize_system() -> bool:
    """Build the database, vector store and pipeline.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Initializing system..."):
            database = Database()
            database.initialize()
            conversations = ConversationStore(database)
            prompts = SystemPromptStore(database)
            search_service = get_vector_store()
            pipeline = RAGPipeline.from_config(prompts, search_service=search_service)
            st.session_state.services = Services(
                chat=ChatService(pipeline, conversations),
                conversations=conversations,
                prompts=prompts,
                analytics=AnalyticsService(database),
                ingestor=KnowledgeBaseIngestor(EmbeddingService(), search_service),
            )

        logger.info("StudyBot services initialized")
        st.success("System initialized successfully!")

    except (ValueError, RuntimeError, OSError) as e:
        logger.exception("Failed to initialize system")
        st.error(f"Failed to initialize system: {e}")
        return False
    else:
        return True


def render_sidebar() -> str:
    """Render the sidebar with configuration, status and page selection.

    Returns:
        The selected page name.
    """
    with st.sidebar:
        st.header("StudyBot")

        if (
            st.button("Initialize System", use_container_width=True)
            and validate_configuration()
            and initialize_system()
        ):
            st.rerun()

        st.divider()
        st.subheader("System Status")
        st.write(f"**Vector backend:** {config.VECTOR_BACKEND}")
        st.write(f"**Chat model:** {config.CHAT_MODEL}")
        ready = SessionState.is_system_ready()
        st.write(f"**System:** {'Ready' if ready else 'Not Initialized'}")

        st.divider()
        page = st.radio("Page", ["Chat", "Admin"], horizontal=True)
        if page == "Chat" and ready:
            st.selectbox("Assistant", PROFILES, key="profile")
            if st.button("New Conversation", use_container_width=True):
                SessionState.reset_conversation()
                st.rerun()
    return page


def render_feedback(services: Services, message: dict) -> None:
    """Render thumbs up/down buttons under an answer."""
    message_id = message.get("message_id")
    if not message_id or message_id in st.session_state.rated:
        return

    col1, col2, _ = st.columns([1, 1, 8])
    choice = None
    if col1.button("👍", key=f"up_{message_id}"):
        choice = "positive"
    if col2.button("👎", key=f"down_{message_id}"):
        choice = "negative"
    if choice:
        try:
            services.chat.submit_feedback(
                message_id, st.session_state.session_id, choice
            )
        except ValueError as e:
            st.error(str(e))
        else:
            st.session_state.rated.add(message_id)
            st.toast("Thanks for your feedback!")


def render_chat(services: Services) -> None:
    """Render the student chat page."""
    st.header("Ask StudyBot")

    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])
            if message["role"] == "assistant":
                render_feedback(services, message)

    question = st.chat_input("Ask about programmes, campus services or the library")
    if not question:
        return

    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"), st.spinner("Thinking..."):
        try:
            reply = services.chat.send_message(
                question,
                session_id=st.session_state.session_id,
                profile=st.session_state.get("profile"),
            )
        except (QuotaExceededError, RateLimitedError):
            logger.exception("Completion service unavailable")
            st.warning("The assistant is busy right now. Please try again shortly.")
            return
        except GenerationError:
            logger.exception("Answer generation failed")
            st.error("Sorry, something went wrong while answering.")
            return

    st.session_state.session_id = reply.session_id
    st.session_state.messages.append({
        "role": "assistant",
        "content": reply.answer,
        "message_id": reply.message_id,
    })
    st.rerun()


def render_prompt_admin(services: Services) -> None:
    """Render active prompt editing and version history."""
    active = services.prompts.get_active()
    st.caption(
        f"Active version: {active.version}" if active else "No active prompt; using default"
    )

    with st.form("prompt_form"):
        content = st.text_area(
            "System prompt",
            value=active.content if active else config.DEFAULT_PERSONA,
            height=300,
        )
        author = st.text_input("Edited by", value="admin")
        summary = st.text_input("Change summary")
        if st.form_submit_button("Save new version"):
            try:
                if active:
                    services.prompts.update(
                        active.prompt_id, content, author, change_summary=summary
                    )
                else:
                    services.prompts.create(content, author)
            except ValueError as e:
                st.error(str(e))
            else:
                st.success("Prompt saved")
                st.rerun()

    st.subheader("Version history")
    for prompt in services.prompts.list_prompts():
        label = f"v{prompt.version} - {prompt.created_at[:16]} by {prompt.created_by}"
        with st.expander(label + (" (active)" if prompt.is_active else "")):
            st.code(prompt.content)
            if prompt.is_active:
                continue
            col1, col2 = st.columns(2)
            if col1.button("Restore", key=f"restore_{prompt.prompt_id}"):
                services.prompts.restore(prompt.prompt_id, "admin")
                st.rerun()
            if col2.button("Delete", key=f"delete_{prompt.prompt_id}"):
                try:
                    services.prompts.delete(prompt.prompt_id)
                except ActivePromptDeletionError as e:
                    st.error(str(e))
                else:
                    st.rerun()


def render_conversation_admin(services: Services) -> None:
    """Render the filtered conversation browser."""
    col1, col2, col3 = st.columns(3)
    search = col1.text_input("Search messages")
    feedback = col2.selectbox("Feedback", ["all", "positive", "negative", "none"])
    page = col3.number_input("Page", min_value=1, value=1)

    summaries, total = services.conversations.list_conversations(
        limit=CONVERSATIONS_PAGE_SIZE,
        offset=(int(page) - 1) * CONVERSATIONS_PAGE_SIZE,
        search=search or None,
        feedback_type=feedback,
    )
    st.caption(f"{total} conversations")

    for summary in summaries:
        label = (
            f"{summary.start_time[:16]} - {summary.message_count} messages - "
            f"👍 {summary.positive_feedback_count} 👎 {summary.negative_feedback_count}"
        )
        with st.expander(label):
            _, messages = services.conversations.get_full_conversation(
                summary.session_id
            )
            for message in messages:
                content = message.content
                if len(content) > MAX_PREVIEW_LENGTH:
                    content = content[:MAX_PREVIEW_LENGTH] + "..."
                st.markdown(f"**{message.role}:** {content}")
                for item in message.feedbacks:
                    st.caption(f"{item.type} feedback: {item.comment or ''}")
            if st.button("Delete conversation", key=f"del_{summary.session_id}"):
                services.conversations.delete_conversation(summary.session_id)
                st.rerun()


def render_analytics(services: Services) -> None:
    """Render usage, cost and activity figures."""
    dashboard = services.analytics.get_dashboard_stats()
    stats = services.analytics.get_stats()

    col1, col2, col3 = st.columns(3)
    col1.metric("Conversations", dashboard.total_conversations)
    col2.metric("Messages (24h)", dashboard.today_messages)
    col3.metric("Feedback (24h)", dashboard.today_feedbacks)
    if dashboard.peak_hour_yesterday:
        st.caption(
            f"Peak hour yesterday: {dashboard.peak_hour_yesterday} "
            f"({dashboard.peak_hour_count} sessions)"
        )

    col1, col2, col3 = st.columns(3)
    col1.metric("Tokens this month", stats.month_tokens)
    col2.metric("Estimated cost", f"${stats.estimated_monthly_cost:.2f}")
    col3.metric("Avg tokens / conversation", stats.avg_tokens_per_conversation)

    usage = services.analytics.get_monthly_usage()
    if usage:
        st.subheader("Monthly usage")
        st.dataframe(
            [
                {
                    "month": row.month,
                    "conversations": row.conversations,
                    "messages": row.messages,
                    "tokens": row.tokens_used,
                    "cost ($)": row.cost,
                }
                for row in usage
            ],
            use_container_width=True,
        )


def render_knowledge_base(services: Services) -> None:
    """Render knowledge-base text ingestion and document listing."""
    with st.form("ingest_form"):
        filename = st.text_input("Document name")
        text = st.text_area("Content", height=200)
        if st.form_submit_button("Add to knowledge base"):
            if not filename.strip() or not text.strip():
                st.error("Both a name and some content are required")
            else:
                try:
                    with st.spinner("Indexing..."):
                        report = services.ingestor.ingest_text(text, filename.strip())
                except (ValueError, RuntimeError) as e:
                    logger.exception("Ingestion failed")
                    st.error(f"Failed to index document: {e}")
                else:
                    st.success(f"Indexed {report.chunks_count} chunks")

    for document in services.ingestor.list_documents():
        col1, col2 = st.columns([4, 1])
        col1.write(
            f"**{document['filename']}** - {document['chunks_count']} chunks "
            f"({(document['upload_date'] or '')[:10]})"
        )
        if col2.button("Delete", key=f"doc_{document['document_id']}"):
            services.ingestor.delete_document(document["document_id"])
            st.rerun()


def render_admin(services: Services) -> None:
    """Render the admin page tabs."""
    st.header("Administration")
    prompts_tab, conversations_tab, analytics_tab, kb_tab = st.tabs(
        ["System prompt", "Conversations", "Analytics", "Knowledge base"]
    )
    with prompts_tab:
        render_prompt_admin(services)
    with conversations_tab:
        render_conversation_admin(services)
    with analytics_tab:
        render_analytics(services)
    with kb_tab:
        render_knowledge_base(services)


def main() -> None:
    """Main entry point for the Streamlit web application."""
    st.set_page_config(page_title="StudyBot", layout="wide")

    SessionState.initialize()
    st.title("StudyBot")

    page = render_sidebar()

    if not SessionState.is_system_ready():
        st.info("Please initialize the system using the sidebar to get started.")
        return

    services = st.session_state.services
    if page == "Admin":
        render_admin(services)
    else:
        render_chat(services)


if __name__ == "__main__":
    main()
