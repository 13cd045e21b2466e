"""Retry policy applied around calls to external resources."""

from __future__ import annotations

import functools
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, ParamSpec, TypeVar

from .config import config

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = config.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a call and how long to wait in between."""

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delays(self) -> Iterator[float]:
        """Yield the wait before each retry (one less than max_attempts)."""  # noqa: DOC402
        delay = self.base_delay
        for _ in range(max(0, self.max_attempts - 1)):
            yield delay
            delay *= self.backoff


def with_retry(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Retry the decorated callable according to ``policy``.

    Only exceptions listed in ``policy.retry_on`` trigger a retry; the last
    failure is re-raised once the attempts are exhausted.

    Returns:
        A decorator wrapping the target callable.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delays = policy.delays()
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except policy.retry_on as exc:
                    delay = next(delays, None)
                    if delay is None:
                        logger.exception(
                            "%s failed after %d attempt(s)", func.__name__, attempt
                        )
                        raise
                    logger.warning(
                        "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                        func.__name__,
                        attempt,
                        policy.max_attempts,
                        exc,
                        delay,
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
