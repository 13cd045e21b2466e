"""StudyBot - RAG chatbot backend for business school students."""

from .chat import ChatService
from .context_gate import ContextGate, GateDecision
from .embeddings import EmbeddingService
from .errors import (
    ActivePromptDeletionError,
    GenerationError,
    PromptNotFoundError,
    QuotaExceededError,
    RateLimitedError,
    RetrievalError,
    StudyBotError,
)
from .generation import GenerationClient
from .ingestion import DocumentLoader, KnowledgeBaseIngestor, TextChunker
from .models import ChatReply, ChatTurn, PipelineResult, RetrievedDocument
from .pipeline import RAGPipeline
from .prompting import PromptAssembler
from .reformulator import QueryReformulator
from .retriever import VectorRetriever
from .sanitizer import sanitize_response
from .storage import AnalyticsService, ConversationStore, Database, SystemPromptStore
from .vector_store import FaissSearchService, QdrantSearchService, get_vector_store

__all__ = [
    "ActivePromptDeletionError",
    "AnalyticsService",
    "ChatReply",
    "ChatService",
    "ChatTurn",
    "ContextGate",
    "ConversationStore",
    "Database",
    "DocumentLoader",
    "EmbeddingService",
    "FaissSearchService",
    "GateDecision",
    "GenerationClient",
    "GenerationError",
    "KnowledgeBaseIngestor",
    "PipelineResult",
    "PromptAssembler",
    "PromptNotFoundError",
    "QdrantSearchService",
    "QueryReformulator",
    "QuotaExceededError",
    "RAGPipeline",
    "RateLimitedError",
    "RetrievalError",
    "RetrievedDocument",
    "StudyBotError",
    "SystemPromptStore",
    "TextChunker",
    "VectorRetriever",
    "get_vector_store",
    "sanitize_response",
]
