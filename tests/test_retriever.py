"""Tests for retrieval and profile re-ranking."""

import pytest

from studybot import RetrievalError, VectorRetriever
from studybot.retriever import rerank_for_profile

from .conftest import MockEmbeddingService, StaticSearchService, TestConstants, make_document


def test_generic_profile_keeps_similarity_order():
    docs = [make_document("fees", 0.9), make_document("library", 0.8)]
    assert rerank_for_profile(docs, "studybot", 5) == docs


def test_library_profile_prefers_topical_documents():
    docs = [
        make_document("Tuition fees", 0.9),
        make_document("Opening hours", 0.8, source="bibliotheque.pdf"),
        make_document("Exam calendar", 0.7),
        make_document("The library lends laptops", 0.6),
    ]

    result = rerank_for_profile(docs, "bibliobot", 3)

    assert [doc.content for doc in result] == [
        "Opening hours",
        "The library lends laptops",
        "Tuition fees",
    ]


def test_library_profile_pads_with_generic_results():
    docs = [make_document("Tuition fees", 0.9), make_document("Exam calendar", 0.7)]
    result = rerank_for_profile(docs, "bibliobot", 5)
    assert result == docs


def test_unknown_profile_is_treated_as_generic():
    docs = [make_document("a", 0.9), make_document("b", 0.8)]
    assert rerank_for_profile(docs, "unknown", 1) == docs[:1]


def test_retrieve_asks_for_extra_candidates():
    search = StaticSearchService([make_document(str(i), 0.9 - i / 10) for i in range(8)])
    retriever = VectorRetriever(
        embedder=MockEmbeddingService(),
        search_service=search,
        collection=TestConstants.TEST_COLLECTION,
        candidate_multiplier=2,
        score_threshold=0.4,
    )

    result = retriever.retrieve("fees", "studybot", k=3)

    assert len(result) == 3
    assert search.search_calls == [(TestConstants.TEST_COLLECTION, 6, 0.4)]


def test_retrieve_returns_empty_list_without_matches():
    retriever = VectorRetriever(
        embedder=MockEmbeddingService(),
        search_service=StaticSearchService([]),
    )
    assert retriever.retrieve("anything") == []


def test_embedding_failure_is_a_retrieval_error():
    class BrokenEmbedder(MockEmbeddingService):
        def embed(self, text):
            msg = "embeddings down"
            raise RuntimeError(msg)

    retriever = VectorRetriever(
        embedder=BrokenEmbedder(),
        search_service=StaticSearchService([make_document("a", 0.9)]),
    )

    with pytest.raises(RetrievalError):
        retriever.retrieve("fees")


def test_search_failure_propagates():
    class BrokenSearch(StaticSearchService):
        def search(self, vector, collection, k, score_threshold=None):
            msg = "backend down"
            raise RetrievalError(msg)

    retriever = VectorRetriever(
        embedder=MockEmbeddingService(),
        search_service=BrokenSearch(),
    )

    with pytest.raises(RetrievalError, match="backend down"):
        retriever.retrieve("fees")
