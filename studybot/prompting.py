"""Assembly of the chat messages sent to the completion service."""

from collections.abc import Sequence

from .config import config
from .models import ChatMessage, ChatTurn

NO_CONTEXT_MARKER = (
    "There is no relevant information in the knowledge base for this question."
)
CONTEXT_HEADER = "=== PROVIDED CONTEXT ==="
EMPTY_CONTEXT_HEADER = "=== CONTEXT ==="
CONTEXT_FOOTER = "========================"
CONTEXT_INSTRUCTION = "Use only the information above to answer."

FORMATTING_RULES = """ANSWER RULES:
1. Use the provided context to answer precisely and helpfully. If the context \
says there is no relevant information, say you do not know and do not invent \
names, dates, opening hours or URLs.
2. LINK FORMATTING (MANDATORY):
   - Always write links in Markdown only: [Short description](full URL)
   - Never output HTML (<a href=...>) and never paste a bare URL as text
   - Link text must be short and descriptive (resource or service name)
   - URLs must always be complete and start with https://
3. LIST FORMATTING:
   - Always start a new line after a colon (:)
   - Always put each numbered item on its own line
4. Length: adapt to the question, concise but complete.
5. Be natural, conversational and professional."""


class PromptAssembler:
    """Builds the ordered message list: system, recent history, current turn."""

    def __init__(self, history_turns: int | None = None) -> None:
        """Initialize the assembler.

        Args:
            history_turns: Maximum history turns forwarded to the model.
                If None, uses config.PROMPT_HISTORY_TURNS.
        """
        self.history_turns = (
            config.PROMPT_HISTORY_TURNS if history_turns is None else history_turns
        )

    @staticmethod
    def build_context_block(sources: Sequence[str]) -> str:
        """Render the retrieved sources between delimiter lines.

        Returns:
            Numbered context block, or the no-information block when
            ``sources`` is empty.
        """
        if not sources:
            return f"{EMPTY_CONTEXT_HEADER}\n{NO_CONTEXT_MARKER}\n{CONTEXT_FOOTER}"

        items = "\n\n".join(
            f"{index}. {source}" for index, source in enumerate(sources, start=1)
        )
        return f"{CONTEXT_HEADER}\n{items}\n{CONTEXT_FOOTER}\n\n{CONTEXT_INSTRUCTION}"

    def build_system_prompt(self, persona: str, sources: Sequence[str]) -> str:
        """Concatenate persona, context block and formatting rules.

        Returns:
            The system message content.
        """
        context_block = self.build_context_block(sources)
        return f"{persona.strip()}\n\n{context_block}\n\n{FORMATTING_RULES}"

    def assemble(
        self,
        persona: str,
        sources: Sequence[str],
        history: Sequence[ChatTurn],
        message: str,
    ) -> list[ChatMessage]:
        """Build the full message list for one completion call.

        Args:
            persona: Active persona/system prompt text.
            sources: Contents of the relevant documents, best first.
            history: Conversation so far, oldest first.
            message: Current user message.

        Returns:
            New list of role/content messages; the inputs are left untouched.
        """
        messages: list[ChatMessage] = [
            {"role": "system", "content": self.build_system_prompt(persona, sources)}
        ]

        if self.history_turns > 0:
            messages.extend(turn.as_message() for turn in history[-self.history_turns :])

        messages.append({"role": "user", "content": message})
        return messages
