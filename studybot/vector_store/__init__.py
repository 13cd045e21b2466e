"""Vector search backends and factory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from studybot.config import SUPPORTED_VECTOR_BACKENDS, config

from .faiss_store import FaissSearchService
from .qdrant_store import QdrantSearchService

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np

    from studybot.models import RetrievedDocument, VectorPoint


class VectorSearchService(Protocol):
    """Similarity search plus the admin operations used by ingestion."""

    backend: str

    def search(
        self,
        vector: np.ndarray | Sequence[float],
        collection: str,
        k: int,
        score_threshold: float | None = None,
    ) -> list[RetrievedDocument]: ...

    def upsert(self, points: list[VectorPoint], collection: str) -> int: ...

    def list_documents(self, collection: str) -> list[dict[str, Any]]: ...

    def delete_document(self, document_id: str, collection: str) -> None: ...

    def collection_info(self, collection: str) -> dict[str, Any]: ...

    def test_connection(self, collection: str) -> dict[str, Any]: ...


def get_vector_store(backend: str | None = None) -> VectorSearchService:
    """Return the configured vector search backend.

    Args:
        backend: "qdrant" or "faiss". If None, uses config.VECTOR_BACKEND.

    Returns:
        A ready-to-use search service.

    Raises:
        ValueError: If an unsupported backend is requested.
    """
    name = (backend or config.VECTOR_BACKEND).lower()
    if name not in SUPPORTED_VECTOR_BACKENDS:
        msg = f"Unsupported vector store backend: {name}"
        raise ValueError(msg)

    if name == "qdrant":
        return QdrantSearchService(
            url=config.QDRANT_URL,
            api_key=config.QDRANT_API_KEY,
            timeout=config.QDRANT_TIMEOUT,
        )

    return FaissSearchService(
        db_path=config.VECTOR_STORE_DB_PATH,
        index_dir=config.FAISS_INDEX_DIR,
    )


__all__ = [
    "FaissSearchService",
    "QdrantSearchService",
    "VectorSearchService",
    "get_vector_store",
]
