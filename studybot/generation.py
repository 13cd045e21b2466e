"""Chat completion client with typed failures."""

import time
from typing import Any

import openai
from openai import OpenAI

from .config import config
from .errors import GenerationError, QuotaExceededError, RateLimitedError
from .models import ChatMessage, Completion, SamplingParams

logger = config.get_logger(__name__)

QUOTA_ERROR_CODE = "insufficient_quota"


def _is_quota_error(error: openai.RateLimitError) -> bool:
    code = getattr(error, "code", None)
    if code == QUOTA_ERROR_CODE:
        return True
    return "quota" in str(error).lower()


class GenerationClient:
    """Single-shot, non-streaming access to the chat completion endpoint.

    Transport-level retries are left to the OpenAI SDK (``max_retries``);
    this class performs exactly one logical call per ``complete``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        sampling: SamplingParams | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenAI API key. If None, reads from the environment.
            model: Chat model name. If None, uses config.CHAT_MODEL.
            sampling: Default sampling parameters. If None, uses
                config.sampling_params().
        """
        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key or config.get_openai_api_key(),
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
            max_retries=config.OPENAI_MAX_RETRIES,
        )
        self.model = model or config.CHAT_MODEL
        self.sampling = sampling or config.sampling_params()

    def complete(
        self,
        messages: list[ChatMessage],
        sampling: SamplingParams | None = None,
    ) -> Completion:
        """Run one chat completion.

        Args:
            messages: Ordered chat messages (system, history, user).
            sampling: Overrides the default sampling parameters.

        Returns:
            Completion holding the raw text, token usage and latency.

        Raises:
            QuotaExceededError: If the account quota is exhausted.
            RateLimitedError: If the service is throttling requests.
            GenerationError: For any other API failure or an empty response.
        """
        params = sampling or self.sampling
        start = time.perf_counter()

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # pyright: ignore[reportArgumentType]
                stream=False,
                **params.as_kwargs(),
            )
        except openai.RateLimitError as exc:
            if _is_quota_error(exc):
                logger.exception("Completion quota exceeded for %s", self.model)
                msg = "Completion service quota exceeded"
                raise QuotaExceededError(msg) from exc
            logger.warning("Completion service rate limited: %s", exc)
            msg = "Completion service is rate limiting requests"
            raise RateLimitedError(msg) from exc
        except openai.OpenAIError as exc:
            logger.exception("Completion request failed")
            msg = f"Completion request failed: {exc}"
            raise GenerationError(msg) from exc

        latency_ms = int((time.perf_counter() - start) * 1000)

        if not response.choices:
            msg = "Completion response contained no choices"
            raise GenerationError(msg)

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens_used = int(usage.total_tokens) if usage else 0

        logger.info(
            "Completion from %s: %d tokens in %d ms", self.model, tokens_used, latency_ms
        )
        return Completion(
            text=text,
            tokens_used=tokens_used,
            latency_ms=latency_ms,
            model=self.model,
        )

    def test_connection(self) -> dict[str, Any]:
        """Send a tiny prompt to check the service is reachable.

        Returns:
            Mapping with ``success`` and ``model`` keys.
        """
        probe = SamplingParams(
            temperature=0.0,
            max_tokens=10,
            top_p=1.0,
            frequency_penalty=0.0,
            presence_penalty=0.0,
        )
        try:
            completion = self.complete(
                [{"role": "user", "content": 'Connection test. Reply only "OK".'}],
                probe,
            )
        except GenerationError:
            return {"success": False, "model": self.model}
        return {"success": "OK" in completion.text, "model": self.model}
