"""Knowledge-base retrieval with profile-aware soft re-ranking."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .errors import RetrievalError

if TYPE_CHECKING:
    from .embeddings import EmbeddingService
    from .models import RetrievedDocument
    from .vector_store import VectorSearchService

logger = config.get_logger(__name__)

PROFILE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "studybot": (),
    "bibliobot": ("biblioth", "library"),
}


def _matches_profile(document: RetrievedDocument, keywords: tuple[str, ...]) -> bool:
    fields = (
        str(document.metadata.get("source") or ""),
        str(document.metadata.get("title") or ""),
        document.content,
    )
    haystack = " ".join(fields).lower()
    return any(keyword in haystack for keyword in keywords)


def rerank_for_profile(
    documents: list[RetrievedDocument],
    profile: str,
    k: int,
) -> list[RetrievedDocument]:
    """Move documents matching the profile's topic to the front.

    Non-matching documents keep their order behind the matching ones, so
    missing topical hits are padded with the next best generic results.

    Returns:
        At most ``k`` documents.
    """
    keywords = PROFILE_KEYWORDS.get(profile, ())
    if not keywords:
        return documents[:k]

    preferred = [doc for doc in documents if _matches_profile(doc, keywords)]
    others = [doc for doc in documents if not _matches_profile(doc, keywords)]
    logger.debug(
        "Profile %s: %d topical of %d candidates", profile, len(preferred), len(documents)
    )
    return (preferred + others)[:k]


class VectorRetriever:
    """Embeds a query and searches the configured collection."""

    def __init__(
        self,
        embedder: EmbeddingService,
        search_service: VectorSearchService,
        collection: str | None = None,
        candidate_multiplier: int | None = None,
        score_threshold: float | None = None,
    ) -> None:
        """Initialize the retriever.

        Args:
            embedder: Service turning the query into a vector.
            search_service: Vector search backend.
            collection: Collection to search. If None, uses
                config.QDRANT_COLLECTION.
            candidate_multiplier: Candidates fetched per requested result
                before re-ranking. If None, uses config.CANDIDATE_MULTIPLIER.
            score_threshold: Score floor passed to the backend. If None,
                uses config.SEARCH_SCORE_THRESHOLD.
        """
        self.embedder = embedder
        self.search_service = search_service
        self.collection = collection or config.QDRANT_COLLECTION
        self.candidate_multiplier = max(
            1,
            config.CANDIDATE_MULTIPLIER
            if candidate_multiplier is None
            else candidate_multiplier,
        )
        self.score_threshold = (
            config.SEARCH_SCORE_THRESHOLD if score_threshold is None else score_threshold
        )

    def retrieve(
        self,
        query: str,
        profile: str | None = None,
        k: int | None = None,
    ) -> list[RetrievedDocument]:
        """Return up to ``k`` documents for ``query``, best first.

        Args:
            query: Standalone retrieval query.
            profile: Chatbot profile driving the soft re-rank.
            k: Number of results. If None, uses config.RETRIEVAL_TOP_K.

        Returns:
            Scored documents; an empty list means no matches.

        Raises:
            RetrievalError: If embedding or search fails.
        """
        limit = config.RETRIEVAL_TOP_K if k is None else k
        profile = profile or config.DEFAULT_CHATBOT

        try:
            vector = self.embedder.embed(query)
        except Exception as exc:
            msg = "Could not embed the retrieval query"
            raise RetrievalError(msg) from exc

        candidates = self.search_service.search(
            vector,
            self.collection,
            limit * self.candidate_multiplier,
            score_threshold=self.score_threshold,
        )
        if not candidates:
            logger.warning("No matches in %s for query: %s", self.collection, query)
            return []

        documents = rerank_for_profile(candidates, profile, limit)
        logger.info(
            "Retrieved %d documents (top score %.3f)",
            len(documents),
            documents[0].score,
        )
        return documents
