"""FAISS-backed vector search with SQLite payload storage.

Each collection gets its own ``IndexIDMap`` over an inner-product index on
L2-normalised vectors, so scores are cosine similarities. Payloads live in a
single SQLite table keyed by the FAISS vector id.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

import faiss
import numpy as np

from studybot.config import config
from studybot.errors import RetrievalError
from studybot.models import RetrievedDocument

if TYPE_CHECKING:
    from collections.abc import Sequence

    from studybot.models import VectorPoint

logger = config.get_logger(__name__)


class FaissSearchService:
    """Local vector search for development and offline use."""

    backend = "faiss"

    def __init__(
        self,
        db_path: Path = Path("data/vector_store.db"),
        index_dir: Path = Path("data/faiss"),
    ) -> None:
        """Configure the FAISS store and create the payload table."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(exist_ok=True, parents=True)
        self.indexes: dict[str, faiss.IndexIDMap] = {}
        self._create_tables()

    def _create_tables(self) -> None:
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS points (
                    vector_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    point_id TEXT NOT NULL,
                    collection TEXT NOT NULL,
                    document_id TEXT,
                    content TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (collection, point_id)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_points_document "
                "ON points(collection, document_id)"
            )
            conn.commit()

    def _index_path(self, collection: str) -> Path:
        return self.index_dir / f"{collection}.faiss"

    @staticmethod
    def _normalize_embedding(embedding: np.ndarray | Sequence[float]) -> np.ndarray:
        """Normalize embedding for cosine similarity using inner product search.

        Returns:
            Normalized float32 vector.
        """
        vector = np.asarray(embedding, dtype="float32").reshape(1, -1).copy()
        if np.linalg.norm(vector) == 0:
            return vector[0]
        faiss.normalize_L2(vector)
        return vector[0]

    def _get_index(self, collection: str) -> faiss.IndexIDMap | None:
        """Return the in-memory index, loading it from disk if needed.

        Returns:
            The collection index, or None if nothing was indexed yet.
        """
        index = self.indexes.get(collection)
        if index is not None:
            return index

        path = self._index_path(collection)
        if not path.exists():
            return None

        loaded = faiss.read_index(str(path))
        if not isinstance(loaded, (faiss.IndexIDMap, faiss.IndexIDMap2)):
            logger.warning(
                "Loaded FAISS index is %s; wrapping with IndexIDMap to enable IDs",
                type(loaded).__name__,
            )
            loaded = faiss.IndexIDMap(loaded)
        self.indexes[collection] = loaded
        logger.info("Loaded FAISS index %s with %d vectors", path, loaded.ntotal)
        return loaded

    def _save_index(self, collection: str) -> None:
        index = self.indexes.get(collection)
        if index is None:
            return
        faiss.write_index(index, str(self._index_path(collection)))
        logger.info("Saved FAISS index for %s", collection)

    def search(
        self,
        vector: np.ndarray | Sequence[float],
        collection: str,
        k: int,
        score_threshold: float | None = None,
    ) -> list[RetrievedDocument]:
        """Return the ``k`` most similar payloads, best first.

        Raises:
            RetrievalError: If the index or payload store cannot be read.
        """  # noqa: DOC201
        try:
            index = self._get_index(collection)
            if index is None or index.ntotal == 0:
                logger.warning("FAISS index %s is empty", collection)
                return []

            query = self._normalize_embedding(vector)
            if query.shape[0] != index.d:
                msg = (
                    f"Query dimension {query.shape[0]} does not match "
                    f"FAISS index dimension {index.d}"
                )
                raise ValueError(msg)

            scores, vector_ids = index.search(
                query.reshape(1, -1),
                min(k, index.ntotal),
            )  # pyright: ignore[reportCallIssue]

            results: list[RetrievedDocument] = []
            with sqlite3.connect(str(self.db_path)) as conn:
                cursor = conn.cursor()
                for score, vector_id in zip(scores[0], vector_ids[0], strict=True):
                    if int(vector_id) == -1:
                        continue
                    similarity = min(max(float(score), 0.0), 1.0)
                    if score_threshold is not None and similarity < score_threshold:
                        continue
                    cursor.execute(
                        "SELECT point_id, content, payload FROM points "
                        "WHERE vector_id = ?",
                        (int(vector_id),),
                    )
                    row = cursor.fetchone()
                    if row is None:
                        continue
                    metadata = json.loads(row[2])
                    metadata["id"] = row[0]
                    results.append(
                        RetrievedDocument(
                            content=row[1],
                            score=similarity,
                            metadata=metadata,
                        )
                    )
        except (RuntimeError, ValueError, sqlite3.Error) as exc:
            logger.exception("FAISS search failed on collection %s", collection)
            msg = f"Vector search failed on collection '{collection}'"
            raise RetrievalError(msg) from exc

        return results

    def upsert(self, points: list[VectorPoint], collection: str) -> int:
        """Insert points, replacing any with the same point id.

        Returns:
            Number of points written.

        Raises:
            ValueError: If a vector dimension differs from the index.
        """
        if not points:
            return 0

        index = self._get_index(collection)
        vectors: list[np.ndarray] = []
        vector_ids: list[int] = []
        stale_ids: list[int] = []

        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            for point in points:
                embedding = self._normalize_embedding(point.vector)
                if index is None:
                    index = faiss.IndexIDMap(faiss.IndexFlatIP(embedding.shape[0]))
                    self.indexes[collection] = index
                    logger.info(
                        "Initialized FAISS index for %s with dimension %d",
                        collection,
                        embedding.shape[0],
                    )
                elif embedding.shape[0] != index.d:
                    msg = (
                        f"Embedding dimension {embedding.shape[0]} does not match "
                        f"FAISS index dimension {index.d}"
                    )
                    raise ValueError(msg)

                cursor.execute(
                    "SELECT vector_id FROM points WHERE collection = ? AND point_id = ?",
                    (collection, point.point_id),
                )
                existing = cursor.fetchone()
                if existing is not None:
                    stale_ids.append(int(existing[0]))
                    cursor.execute(
                        "DELETE FROM points WHERE vector_id = ?", (existing[0],)
                    )

                payload = dict(point.payload)
                content = str(payload.pop("content", ""))
                cursor.execute(
                    "INSERT INTO points "
                    "(point_id, collection, document_id, content, payload) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        point.point_id,
                        collection,
                        payload.get("document_id"),
                        content,
                        json.dumps(payload),
                    ),
                )
                vector_ids.append(int(cursor.lastrowid or 0))
                vectors.append(embedding)
            conn.commit()

        if stale_ids:
            index.remove_ids(np.asarray(stale_ids, dtype="int64"))
        index.add_with_ids(
            np.vstack(vectors).astype("float32"),
            np.asarray(vector_ids, dtype="int64"),
        )  # pyright: ignore[reportCallIssue]
        self._save_index(collection)

        logger.info("Added %d vectors to FAISS index %s", len(vector_ids), collection)
        return len(vector_ids)

    def list_documents(self, collection: str) -> list[dict[str, Any]]:
        """Group stored chunks by document.

        Returns:
            One entry per document with its chunk count, newest first.
        """
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT document_id, payload, COUNT(*) AS chunks_count
                FROM points
                WHERE collection = ? AND document_id IS NOT NULL
                GROUP BY document_id
                """,
                (collection,),
            )
            rows = cursor.fetchall()

        documents = []
        for document_id, payload_json, chunks_count in rows:
            payload = json.loads(payload_json)
            documents.append({
                "document_id": document_id,
                "filename": payload.get("filename"),
                "upload_date": payload.get("upload_date"),
                "chunks_count": int(chunks_count),
            })
        return sorted(documents, key=lambda doc: doc["upload_date"] or "", reverse=True)

    def delete_document(self, document_id: str, collection: str) -> None:
        """Delete every chunk of a document from the index and payload table."""
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT vector_id FROM points WHERE collection = ? AND document_id = ?",
                (collection, document_id),
            )
            vector_ids = [int(row[0]) for row in cursor.fetchall()]
            cursor.execute(
                "DELETE FROM points WHERE collection = ? AND document_id = ?",
                (collection, document_id),
            )
            conn.commit()

        index = self._get_index(collection)
        if index is not None and vector_ids:
            index.remove_ids(np.asarray(vector_ids, dtype="int64"))
            self._save_index(collection)
        logger.info(
            "Deleted document %s (%d chunks) from %s",
            document_id,
            len(vector_ids),
            collection,
        )

    def collection_info(self, collection: str) -> dict[str, Any]:
        """Describe a collection.

        Returns:
            Mapping with name, points_count, vector_size and status.
        """
        index = self._get_index(collection)
        return {
            "name": collection,
            "points_count": int(index.ntotal) if index is not None else 0,
            "vector_size": int(index.d) if index is not None else 0,
            "status": "green" if index is not None else "missing",
        }

    def test_connection(self, collection: str) -> dict[str, Any]:
        """Check the payload store and index are readable.

        Returns:
            Mapping with success, collection_exists, points_count and url.
        """
        try:
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.execute("SELECT 1")
            info = self.collection_info(collection)
        except (RuntimeError, sqlite3.Error):
            logger.exception("FAISS store check failed")
            return {
                "success": False,
                "collection_exists": False,
                "points_count": 0,
                "url": str(self.index_dir),
            }
        return {
            "success": True,
            "collection_exists": info["status"] != "missing",
            "points_count": info["points_count"],
            "url": str(self.index_dir),
        }
