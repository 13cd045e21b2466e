"""Knowledge-base ingestion: load, chunk, embed and index documents."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pypdf
from pypdf.errors import PyPdfError

from .config import config
from .models import DocumentChunk, IngestionReport, VectorPoint, utc_timestamp

if TYPE_CHECKING:
    from .embeddings import EmbeddingService
    from .vector_store import VectorSearchService

logger = config.get_logger(__name__)

TEXT_SUFFIXES = {".txt", ".md"}


class DocumentLoader:
    """Reads knowledge-base files from disk as plain text."""

    @staticmethod
    def load_pdf(file_path: Path) -> str:
        """Extract the text layer of a PDF.

        Returns:
            Page texts joined by blank lines; image-only pages are empty.
        """
        try:
            reader = pypdf.PdfReader(file_path)
            pages = [page.extract_text() or "" for page in reader.pages]
        except (OSError, PyPdfError):
            logger.exception("Could not read PDF %s", file_path.name)
            raise
        logger.info("Read %d pages from %s", len(pages), file_path.name)
        return "\n\n".join(pages)

    @staticmethod
    def load_txt(file_path: Path) -> str:
        """Read a UTF-8 text or Markdown file."""  # noqa: DOC201
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.exception("Could not read text file %s", file_path.name)
            raise

    @classmethod
    def load_document(cls, file_path: Path) -> str:
        """Dispatch on the file suffix.

        Returns:
            The document text.

        Raises:
            ValueError: For anything other than .pdf, .txt or .md.
        """
        suffix = file_path.suffix.lower()
        if suffix == ".pdf":
            return cls.load_pdf(file_path)
        if suffix in TEXT_SUFFIXES:
            return cls.load_txt(file_path)
        msg = f"Unsupported file type: {suffix or file_path.name}"
        raise ValueError(msg)


class TextChunker:
    """Fixed-size character chunks with overlap."""

    def __init__(self, chunk_size: int | None = None, overlap: int | None = None) -> None:
        """Initialize the chunker.

        Args:
            chunk_size: Characters per chunk. If None, uses config.CHUNK_SIZE.
            overlap: Characters shared by consecutive chunks. If None, uses
                config.CHUNK_OVERLAP.

        Raises:
            ValueError: If the sizes cannot make progress through the text.
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.overlap = config.CHUNK_OVERLAP if overlap is None else overlap
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise ValueError(msg)
        if not 0 <= self.overlap < self.chunk_size:
            msg = (
                f"overlap must be in [0, chunk_size), got {self.overlap} "
                f"for chunk_size {self.chunk_size}"
            )
            raise ValueError(msg)

    def split(self, text: str) -> list[str]:
        """Split text into overlapping windows.

        Returns:
            Non-blank chunks in document order.
        """
        step = self.chunk_size - self.overlap
        chunks = []
        start = 0
        while start < len(text):
            piece = text[start : start + self.chunk_size]
            if piece.strip():
                chunks.append(piece)
            if start + self.chunk_size >= len(text):
                break
            start += step
        return chunks

    def chunk_text(self, text: str, source: str = "document") -> list[DocumentChunk]:
        """Split text into chunks carrying their position.

        Returns:
            A list of DocumentChunk objects.
        """
        pieces = self.split(text)
        chunks = [
            DocumentChunk(
                content=piece,
                metadata={
                    "source": source,
                    "chunk_index": index,
                    "total_chunks": len(pieces),
                },
            )
            for index, piece in enumerate(pieces)
        ]
        logger.info("Text split into %d chunks", len(chunks))
        return chunks


class KnowledgeBaseIngestor:
    """Writes documents into a vector collection."""

    def __init__(
        self,
        embedder: EmbeddingService,
        search_service: VectorSearchService,
        chunker: TextChunker | None = None,
        collection: str | None = None,
    ) -> None:
        """Initialize the ingestor.

        Args:
            embedder: Service computing chunk embeddings.
            search_service: Vector backend receiving the points.
            chunker: Chunking strategy. Defaults to the configured sizes.
            collection: Target collection. If None, uses
                config.QDRANT_COLLECTION.
        """
        self.embedder = embedder
        self.search_service = search_service
        self.chunker = chunker or TextChunker()
        self.collection = collection or config.QDRANT_COLLECTION

    def ingest_text(
        self,
        text: str,
        filename: str,
        extra_payload: dict[str, Any] | None = None,
    ) -> IngestionReport:
        """Chunk, embed and index raw text.

        Returns:
            The document id and number of chunks written.

        Raises:
            ValueError: If the text has no content.
        """
        chunks = self.chunker.chunk_text(text, source=filename)
        if not chunks:
            msg = f"Document {filename} has no text content"
            raise ValueError(msg)

        document_id = str(uuid.uuid4())
        upload_date = utc_timestamp()
        embeddings = self.embedder.embed_batch([chunk.content for chunk in chunks])

        points = []
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            chunk.embedding = embedding
            payload = {
                **(extra_payload or {}),
                "document_id": document_id,
                "filename": filename,
                "source": filename,
                "chunk_index": chunk.metadata["chunk_index"],
                "total_chunks": chunk.metadata["total_chunks"],
                "content": chunk.content,
                "upload_date": upload_date,
            }
            points.append(
                VectorPoint(point_id=str(uuid.uuid4()), vector=embedding, payload=payload)
            )

        self.search_service.upsert(points, self.collection)
        logger.info(
            "Indexed %s as %s (%d chunks)", filename, document_id, len(points)
        )
        return IngestionReport(
            document_id=document_id,
            filename=filename,
            chunks_count=len(points),
        )

    def ingest_file(self, file_path: Path) -> IngestionReport:
        """Load a .txt, .md or .pdf file and index it.

        Returns:
            The ingestion report.
        """
        file_path = Path(file_path)
        logger.info("Ingesting %s", file_path)
        text = DocumentLoader.load_document(file_path)
        return self.ingest_text(text, file_path.name)

    def list_documents(self) -> list[dict[str, Any]]:
        """Return the indexed documents with their chunk counts."""  # noqa: DOC201
        return self.search_service.list_documents(self.collection)

    def delete_document(self, document_id: str) -> None:
        """Remove a document and all its chunks."""
        self.search_service.delete_document(document_id, self.collection)
