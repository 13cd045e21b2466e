"""Follow-up question rewriting using the conversation history."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config
from .models import SamplingParams

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .generation import GenerationClient
    from .models import ChatTurn

logger = config.get_logger(__name__)

REWRITE_PROMPT = (
    "Given the following conversation and a follow up question, rephrase the "
    "follow up question to be a standalone question.\n\n"
    "Chat History:\n{history}\n\n"
    "Follow Up Input: {question}\n\n"
    "Standalone Question:"
)


class QueryReformulator:
    """Turns a short follow-up into a standalone retrieval query."""

    def __init__(
        self,
        generator: GenerationClient,
        word_threshold: int | None = None,
        history_turns: int | None = None,
        sampling: SamplingParams | None = None,
    ) -> None:
        """Initialize the reformulator.

        Args:
            generator: Completion client used for the rewrite call.
            word_threshold: Messages with more words than this are used as is.
                If None, uses config.QUERY_REWRITE_WORD_THRESHOLD.
            history_turns: Turns of history shown to the model.
                If None, uses config.QUERY_REWRITE_HISTORY_TURNS.
            sampling: Sampling for the rewrite call. If None, a low
                temperature, short completion is used.
        """
        self.generator = generator
        self.word_threshold = (
            config.QUERY_REWRITE_WORD_THRESHOLD
            if word_threshold is None
            else word_threshold
        )
        self.history_turns = (
            config.QUERY_REWRITE_HISTORY_TURNS if history_turns is None else history_turns
        )
        self.sampling = sampling or SamplingParams(
            temperature=config.QUERY_REWRITE_TEMPERATURE,
            max_tokens=config.QUERY_REWRITE_MAX_TOKENS,
            top_p=1.0,
            frequency_penalty=0.0,
            presence_penalty=0.0,
        )

    def needs_rewrite(self, message: str, history: Sequence[ChatTurn]) -> bool:
        """Tell whether the message depends on earlier turns.

        Returns:
            False for an empty history or an already explicit message.
        """
        if not history:
            return False
        return len(message.split()) <= self.word_threshold

    def build_prompt(self, message: str, history: Sequence[ChatTurn]) -> str:
        """Render the rewrite prompt.

        Returns:
            Prompt text with the recent turns and the follow-up question.
        """
        lines = [
            f"{'Human' if turn.role == 'user' else 'Assistant'}: {turn.content}"
            for turn in history[-self.history_turns :]
        ]
        return REWRITE_PROMPT.format(history="\n".join(lines), question=message)

    def reformulate(self, message: str, history: Sequence[ChatTurn]) -> str:
        """Return a standalone version of ``message``.

        Any failure of the rewrite call falls back to the original message.

        Returns:
            The retrieval query, never empty for a non-empty message.
        """
        if not self.needs_rewrite(message, history):
            return message

        prompt = self.build_prompt(message, history)
        try:
            completion = self.generator.complete(
                [{"role": "user", "content": prompt}],
                self.sampling,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Query reformulation failed, using original: %s", exc)
            return message

        rewritten = completion.text.strip()
        if not rewritten:
            logger.warning("Query reformulation returned nothing, using original")
            return message

        logger.info("Reformulated query: '%s' -> '%s'", message, rewritten)
        return rewritten
