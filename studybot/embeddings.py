"""Query and chunk embeddings from the OpenAI API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from openai import OpenAI

from .config import config

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = config.get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


class EmbeddingService:
    """Turns knowledge-base chunks and student queries into float32 vectors.

    Vectors are returned in input order so they can be zipped back onto the
    chunks they came from.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
    ) -> None:
        """Create the OpenAI client.

        Args:
            api_key: OpenAI API key. If None, reads OPENAI_API_KEY.
            model: Embedding model. If None, uses config.EMBEDDING_MODEL.
            dimensions: Optional output size for models that support
                shortened embeddings. The vector collection must match it.
        """
        self.client = OpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=config.get_api_headers() or None,
            max_retries=config.OPENAI_MAX_RETRIES,
        )
        self.model = model or config.EMBEDDING_MODEL
        self.dimensions = dimensions

    def _create(self, payload: str | list[str]) -> list[np.ndarray]:
        kwargs = {"model": self.model, "input": payload}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions
        response = self.client.embeddings.create(**kwargs)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [np.asarray(item.embedding, dtype=np.float32) for item in ordered]

    def embed(self, text: str) -> np.ndarray:
        """Embed a single query or chunk.

        Returns:
            The embedding vector.

        Raises:
            ValueError: If the text is blank, which the API rejects.
        """
        if not text.strip():
            msg = "Cannot embed empty text"
            raise ValueError(msg)

        try:
            vectors = self._create(text)
        except Exception:
            logger.exception("Embedding request failed for %d chars", len(text))
            raise
        return vectors[0]

    def embed_batch(
        self,
        texts: Sequence[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> list[np.ndarray]:
        """Embed many texts, ``batch_size`` per request.

        Returns:
            One vector per input text, in the same order.
        """
        vectors: list[np.ndarray] = []
        batches = range(0, len(texts), batch_size)
        for number, start in enumerate(batches, start=1):
            batch = list(texts[start : start + batch_size])
            try:
                vectors.extend(self._create(batch))
            except Exception:
                logger.exception("Embedding batch %d/%d failed", number, len(batches))
                raise
            logger.debug("Embedded batch %d/%d (%d texts)", number, len(batches), len(batch))

        if vectors:
            logger.info("Embedded %d texts with %s", len(vectors), self.model)
        return vectors
