"""Similarity gate deciding whether retrieved documents can ground an answer."""

from dataclasses import dataclass, field

from .config import config
from .models import RetrievedDocument

logger = config.get_logger(__name__)


@dataclass(frozen=True)
class GateDecision:
    """Documents split by the similarity threshold."""

    relevant: list[RetrievedDocument] = field(default_factory=list)
    discarded: list[RetrievedDocument] = field(default_factory=list)
    has_relevant_context: bool = False

    @property
    def relevant_count(self) -> int:
        """Number of documents at or above the threshold."""  # noqa: DOC201
        return len(self.relevant)


class ContextGate:
    """Partitions scored documents into relevant and discarded ones."""

    def __init__(
        self,
        threshold: float | None = None,
        min_relevant: int | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            threshold: Minimum score for a document to count as relevant.
                If None, uses config.SIMILARITY_THRESHOLD.
            min_relevant: Relevant documents required to trust retrieval.
                If None, uses config.MIN_RELEVANT_DOCS.

        Raises:
            ValueError: If the threshold is outside [0, 1] or min_relevant
                is negative.
        """
        self.threshold = (
            config.SIMILARITY_THRESHOLD if threshold is None else threshold
        )
        self.min_relevant = (
            config.MIN_RELEVANT_DOCS if min_relevant is None else min_relevant
        )

        if not 0.0 <= self.threshold <= 1.0:
            msg = f"Similarity threshold must be within [0, 1], got {self.threshold}"
            raise ValueError(msg)
        if self.min_relevant < 0:
            msg = f"Minimum relevant count cannot be negative, got {self.min_relevant}"
            raise ValueError(msg)

    def evaluate(self, documents: list[RetrievedDocument]) -> GateDecision:
        """Split documents on the similarity threshold.

        Args:
            documents: Scored documents, in retrieval order.

        Returns:
            GateDecision keeping the input order within each partition.
        """
        relevant = [doc for doc in documents if doc.score >= self.threshold]
        discarded = [doc for doc in documents if doc.score < self.threshold]
        has_context = len(relevant) >= self.min_relevant

        logger.info(
            "Context gate: %d/%d documents >= %.2f",
            len(relevant),
            len(documents),
            self.threshold,
        )
        if not has_context:
            logger.warning(
                "No relevant context found; answering without knowledge base"
            )

        return GateDecision(
            relevant=relevant,
            discarded=discarded,
            has_relevant_context=has_context,
        )
