"""Vector search backed by a Qdrant server."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
    VectorParams,
)

from studybot.config import config
from studybot.errors import RetrievalError
from studybot.models import RetrievedDocument

if TYPE_CHECKING:
    from collections.abc import Sequence

    from studybot.models import VectorPoint

logger = config.get_logger(__name__)

SCROLL_PAGE_SIZE = 256
DOCUMENT_FIELDS = ["document_id", "filename", "upload_date", "total_chunks"]


def _as_list(vector: np.ndarray | Sequence[float]) -> list[float]:
    return np.asarray(vector, dtype="float32").tolist()


class QdrantSearchService:
    """Similarity search and collection admin against Qdrant."""

    backend = "qdrant"

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: int = 30,
        client: QdrantClient | None = None,
    ) -> None:
        """Connect to Qdrant.

        Args:
            url: Server URL. If None, uses config.QDRANT_URL.
            api_key: Optional API key for managed clusters.
            timeout: Request timeout in seconds.
            client: Pre-built client, mostly for tests.
        """
        self.url = url or config.QDRANT_URL
        self.client = client or QdrantClient(
            url=self.url,
            api_key=api_key,
            timeout=timeout,
        )

    def search(
        self,
        vector: np.ndarray | Sequence[float],
        collection: str,
        k: int,
        score_threshold: float | None = None,
    ) -> list[RetrievedDocument]:
        """Return the ``k`` nearest points, best first.

        Raises:
            RetrievalError: If the server cannot be queried.
        """  # noqa: DOC201
        try:
            response = self.client.query_points(
                collection_name=collection,
                query=_as_list(vector),
                limit=k,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as exc:
            logger.exception("Qdrant search failed on collection %s", collection)
            msg = f"Vector search failed on collection '{collection}'"
            raise RetrievalError(msg) from exc

        documents = []
        for point in response.points:
            payload = dict(point.payload or {})
            content = str(payload.pop("content", ""))
            payload["id"] = str(point.id)
            documents.append(
                RetrievedDocument(
                    content=content,
                    score=float(point.score),
                    metadata=payload,
                )
            )

        logger.info("Qdrant returned %d points from %s", len(documents), collection)
        return documents

    def ensure_collection(self, collection: str, dimension: int) -> bool:
        """Create the collection with cosine distance if missing.

        Returns:
            True when the collection was created.
        """
        if self.client.collection_exists(collection):
            return False

        self.client.create_collection(
            collection_name=collection,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )
        logger.info("Created Qdrant collection %s (dim=%d)", collection, dimension)
        return True

    def upsert(self, points: list[VectorPoint], collection: str) -> int:
        """Insert or replace points.

        Returns:
            Number of points written.
        """
        if not points:
            return 0

        self.ensure_collection(collection, len(points[0].vector))
        self.client.upsert(
            collection_name=collection,
            points=[
                PointStruct(
                    id=point.point_id,
                    vector=_as_list(point.vector),
                    payload=point.payload,
                )
                for point in points
            ],
            wait=True,
        )
        logger.info("Upserted %d points into %s", len(points), collection)
        return len(points)

    def list_documents(self, collection: str) -> list[dict[str, Any]]:
        """Group indexed chunks by document.

        Returns:
            One entry per document with its chunk count, newest first.
        """
        if not self.client.collection_exists(collection):
            return []

        documents: dict[str, dict[str, Any]] = {}
        offset = None
        while True:
            records, offset = self.client.scroll(
                collection_name=collection,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=DOCUMENT_FIELDS,
                with_vectors=False,
            )
            for record in records:
                payload = record.payload or {}
                document_id = payload.get("document_id")
                if not document_id:
                    continue
                entry = documents.setdefault(
                    document_id,
                    {
                        "document_id": document_id,
                        "filename": payload.get("filename"),
                        "upload_date": payload.get("upload_date"),
                        "chunks_count": 0,
                    },
                )
                entry["chunks_count"] += 1
            if offset is None:
                break

        return sorted(
            documents.values(),
            key=lambda doc: doc["upload_date"] or "",
            reverse=True,
        )

    def delete_document(self, document_id: str, collection: str) -> None:
        """Delete every chunk of a document."""
        self.client.delete(
            collection_name=collection,
            points_selector=FilterSelector(
                filter=Filter(
                    must=[
                        FieldCondition(
                            key="document_id",
                            match=MatchValue(value=document_id),
                        )
                    ]
                )
            ),
            wait=True,
        )
        logger.info("Deleted document %s from %s", document_id, collection)

    def collection_info(self, collection: str) -> dict[str, Any]:
        """Describe a collection.

        Returns:
            Mapping with name, points_count, vector_size and status.
        """
        info = self.client.get_collection(collection)
        vectors = info.config.params.vectors
        vector_size = getattr(vectors, "size", 0) or 0
        return {
            "name": collection,
            "points_count": info.points_count or 0,
            "vector_size": vector_size,
            "status": str(getattr(info.status, "value", info.status)),
        }

    def test_connection(self, collection: str) -> dict[str, Any]:
        """Check the server answers and whether the collection exists.

        Returns:
            Mapping with success, collection_exists, points_count and url.
        """
        try:
            names = {col.name for col in self.client.get_collections().collections}
            exists = collection in names
            points = self.collection_info(collection)["points_count"] if exists else 0
        except Exception:
            logger.exception("Qdrant connection test failed")
            return {
                "success": False,
                "collection_exists": False,
                "points_count": 0,
                "url": self.url,
            }
        return {
            "success": True,
            "collection_exists": exists,
            "points_count": points,
            "url": self.url,
        }
