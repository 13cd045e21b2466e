"""Test configuration and fixtures for StudyBot tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and API responses
- Relational store fixtures
- Pipeline stage fakes
"""

import hashlib
import sqlite3
from unittest.mock import Mock, create_autospec, patch

import numpy as np
import pytest

from studybot import (
    AnalyticsService,
    ContextGate,
    ConversationStore,
    Database,
    GenerationClient,
    PromptAssembler,
    QueryReformulator,
    RAGPipeline,
    RetrievedDocument,
    SystemPromptStore,
    VectorRetriever,
)
from studybot.models import Completion
from studybot.retry import RetryPolicy


class TestConstants:
    """Centralized test constants shared across the test suite."""

    # API Configuration
    TEST_API_KEY = "test-key"
    TEST_EMBEDDING_MODEL = "text-embedding-3-small"
    TEST_CHAT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_DIMENSION = 64

    # Knowledge base
    TEST_COLLECTION = "test_collection"
    LIBRARY_HOURS = "Library open 9h-22h Mon-Fri"

    # Personas
    TEST_PERSONA = "You are StudyBot, the assistant of the business school."


class MockEmbeddingService:
    """Mock embedding service for testing without API calls.

    Generates deterministic embeddings based on text content hash,
    ensuring consistent test results across runs.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        """Generate deterministic mock embedding based on text hash."""
        self.calls.append(text)
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return (embedding / np.linalg.norm(embedding)).astype(np.float32)

    def embed_batch(self, texts: list[str], batch_size: int = 100) -> list[np.ndarray]:  # noqa: ARG002
        """Generate batch of mock embeddings."""
        return [self.embed(text) for text in texts]


class FakeGenerator:
    """Completion client returning canned answers and recording its calls."""

    def __init__(self, replies: list[str] | None = None, tokens_used: int = 42) -> None:
        self.replies = list(replies or [])
        self.tokens_used = tokens_used
        self.calls: list[list[dict[str, str]]] = []

    def complete(self, messages, sampling=None) -> Completion:  # noqa: ARG002
        self.calls.append(messages)
        text = self.replies.pop(0) if self.replies else "OK"
        return Completion(
            text=text,
            tokens_used=self.tokens_used,
            latency_ms=5,
            model=TestConstants.TEST_CHAT_MODEL,
        )


class EchoContextGenerator(FakeGenerator):
    """Answers with the context block of the system prompt, if any."""

    def complete(self, messages, sampling=None) -> Completion:
        self.calls.append(messages)
        system = messages[0]["content"]
        if "=== PROVIDED CONTEXT ===" in system:
            context = system.split("=== PROVIDED CONTEXT ===\n", 1)[1]
            text = "According to our records: " + context.split("\n", 1)[0]
        else:
            text = "I do not know."
        return Completion(
            text=text,
            tokens_used=self.tokens_used,
            latency_ms=5,
            model=TestConstants.TEST_CHAT_MODEL,
        )


class StaticSearchService:
    """In-memory search backend returning fixed documents."""

    backend = "static"

    def __init__(self, documents: list[RetrievedDocument] | None = None) -> None:
        self.documents = list(documents or [])
        self.search_calls: list[tuple[str, int, float | None]] = []
        self.upserted: list = []

    def search(self, vector, collection, k, score_threshold=None):  # noqa: ARG002
        self.search_calls.append((collection, k, score_threshold))
        return self.documents[:k]

    def upsert(self, points, collection):  # noqa: ARG002
        self.upserted.extend(points)
        return len(points)

    def list_documents(self, collection):  # noqa: ARG002
        return []

    def delete_document(self, document_id, collection):
        pass


def create_mock_openai_response(embeddings: list[list[float]]) -> Mock:
    """Create a mock OpenAI embeddings API response.

    Args:
        embeddings: List of embedding vectors to return.

    Returns:
        Mock object representing OpenAI embeddings API response.
    """
    mock_response = Mock()
    mock_response.data = [
        Mock(embedding=emb, index=i) for i, emb in enumerate(embeddings)
    ]
    return mock_response


def create_mock_chat_response(content: str | None, total_tokens: int = 120) -> Mock:
    """Create a mock OpenAI chat completion response.

    Args:
        content: The content for the chat completion response.
        total_tokens: Reported token usage.

    Returns:
        Mock object representing OpenAI chat completion response.
    """
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    mock_response.usage = Mock(total_tokens=total_tokens)
    return mock_response


def make_openai_error(cls: type[Exception], message: str, code: str | None = None):
    """Build an OpenAI API error without an HTTP response object."""
    error = cls.__new__(cls)
    Exception.__init__(error, message)
    error.message = message
    error.code = code
    error.body = {"code": code} if code else None
    return error


def make_document(content: str, score: float, **metadata) -> RetrievedDocument:
    """Build a retrieved document with the given score."""
    return RetrievedDocument(content=content, score=score, metadata=metadata)


@pytest.fixture
def openai_embeddings_api_mock():
    """Patch the OpenAI embeddings.create method."""
    with patch("openai.resources.embeddings.Embeddings.create") as mock_create:
        yield mock_create


@pytest.fixture
def mock_embeddings():
    """Deterministic embedding service."""
    return MockEmbeddingService()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def database(tmp_path):
    """Initialised SQLite store with a fast retry policy."""
    db = Database(
        db_path=tmp_path / "test.db",
        retry_policy=RetryPolicy(
            max_attempts=2,
            base_delay=0,
            retry_on=(sqlite3.OperationalError,),
        ),
        sleep=lambda _: None,
    )
    db.initialize()
    return db


@pytest.fixture
def conversation_store(database):
    return ConversationStore(database)


@pytest.fixture
def prompt_store(database):
    return SystemPromptStore(database, default_persona=TestConstants.TEST_PERSONA)


@pytest.fixture
def analytics(database):
    return AnalyticsService(database, price_input=0.000006, price_output=0.000018)


@pytest.fixture
def search_service():
    return StaticSearchService()


@pytest.fixture
def pipeline_factory(prompt_store, mock_embeddings):
    """Factory building a pipeline on fake generation and static search."""

    def _create_pipeline(  # noqa: ANN202
        documents=None,
        generator=None,
        search=None,
        **kwargs,
    ):
        generator = generator or FakeGenerator()
        search = search or StaticSearchService(documents)
        retriever = VectorRetriever(
            embedder=mock_embeddings,
            search_service=search,
            collection=TestConstants.TEST_COLLECTION,
        )
        return RAGPipeline(
            persona_store=prompt_store,
            reformulator=QueryReformulator(generator),
            retriever=retriever,
            gate=ContextGate(threshold=0.55, min_relevant=1),
            assembler=PromptAssembler(history_turns=6),
            generator=generator,
            **kwargs,
        )

    return _create_pipeline


@pytest.fixture
def mock_generation_client():
    """Autospecced GenerationClient for wiring tests."""
    return create_autospec(GenerationClient, instance=True)
