"""RAG answer pipeline: reformulate, retrieve, gate, assemble, generate, sanitize."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Protocol

from .config import config
from .context_gate import ContextGate
from .embeddings import EmbeddingService
from .errors import RetrievalError
from .generation import GenerationClient
from .models import PipelineResult
from .prompting import PromptAssembler
from .reformulator import QueryReformulator
from .retriever import VectorRetriever
from .sanitizer import sanitize_response
from .vector_store import get_vector_store

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import ChatTurn, RetrievedDocument
    from .vector_store import VectorSearchService

logger = config.get_logger(__name__)


class PersonaProvider(Protocol):
    """Source of the active persona text."""

    def get_active_persona_text(self) -> str: ...


class RAGPipeline:
    """Answers one student message from the knowledge base.

    Each call is independent: the pipeline holds no per-conversation state and
    the history window is supplied by the caller.
    """

    def __init__(  # noqa: PLR0913
        self,
        persona_store: PersonaProvider,
        reformulator: QueryReformulator,
        retriever: VectorRetriever,
        gate: ContextGate,
        assembler: PromptAssembler,
        generator: GenerationClient,
        *,
        top_k: int | None = None,
        degrade_on_retrieval_failure: bool = True,
    ) -> None:
        """Wire the pipeline stages.

        Args:
            persona_store: Supplies the persona/system prompt text.
            reformulator: Rewrites follow-ups into standalone queries.
            retriever: Fetches scored documents.
            gate: Keeps documents above the similarity threshold.
            assembler: Builds the message list.
            generator: Calls the completion service.
            top_k: Documents retrieved per query. If None, uses
                config.RETRIEVAL_TOP_K.
            degrade_on_retrieval_failure: When True, a retrieval failure is
                logged and the answer is generated without context. When
                False, the RetrievalError propagates.
        """
        self.persona_store = persona_store
        self.reformulator = reformulator
        self.retriever = retriever
        self.gate = gate
        self.assembler = assembler
        self.generator = generator
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.degrade_on_retrieval_failure = degrade_on_retrieval_failure

    @classmethod
    def from_config(
        cls,
        persona_store: PersonaProvider,
        search_service: VectorSearchService | None = None,
        api_key: str | None = None,
    ) -> RAGPipeline:
        """Build the production pipeline from configuration.

        Returns:
            A pipeline using OpenAI and the configured vector backend.
        """
        generator = GenerationClient(api_key=api_key)
        retriever = VectorRetriever(
            embedder=EmbeddingService(api_key=api_key),
            search_service=search_service or get_vector_store(),
        )
        return cls(
            persona_store=persona_store,
            reformulator=QueryReformulator(generator),
            retriever=retriever,
            gate=ContextGate(),
            assembler=PromptAssembler(),
            generator=generator,
        )

    def _retrieve(
        self, query: str, profile: str
    ) -> tuple[list[RetrievedDocument], bool]:
        """Run retrieval, degrading to no documents on failure if allowed.

        Returns:
            The documents and whether retrieval failed.

        Raises:
            RetrievalError: If retrieval fails and degradation is disabled.
        """
        try:
            return self.retriever.retrieve(query, profile, self.top_k), False
        except RetrievalError:
            logger.exception("Retrieval failed for query: %s", query)
            if not self.degrade_on_retrieval_failure:
                raise
            return [], True

    def answer(
        self,
        message: str,
        history: Sequence[ChatTurn] = (),
        profile: str | None = None,
    ) -> PipelineResult:
        """Answer ``message`` given the recent ``history``.

        Args:
            message: Current student message.
            history: Recent turns, oldest first.
            profile: Chatbot profile. If None, uses config.DEFAULT_CHATBOT.

        Returns:
            The sanitized answer with token usage, latency and sources.
        """
        start = time.perf_counter()
        profile = profile or config.DEFAULT_CHATBOT
        logger.info("Answering message for profile %s", profile)

        persona = self.persona_store.get_active_persona_text()
        query = self.reformulator.reformulate(message, history)
        documents, retrieval_failed = self._retrieve(query, profile)
        decision = self.gate.evaluate(documents)

        sources = (
            [doc.content for doc in decision.relevant]
            if decision.has_relevant_context
            else []
        )
        messages = self.assembler.assemble(persona, sources, history, message)
        completion = self.generator.complete(messages)
        answer = sanitize_response(completion.text)

        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Answer ready: %d tokens, %d ms, %d sources",
            completion.tokens_used,
            latency_ms,
            len(sources),
        )
        return PipelineResult(
            answer_text=answer,
            tokens_used=completion.tokens_used,
            latency_ms=latency_ms,
            sources_used=sources,
            relevant_doc_count=decision.relevant_count,
            has_relevant_context=decision.has_relevant_context,
            reformulated_query=query,
            retrieval_failed=retrieval_failed,
        )
