"""Retry utilities for collaborator I/O.

The orchestrator itself never retries; these helpers wrap individual
HTTP calls made by the spider, the document fetcher and the OpenAI client.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,)

    def delay_for(self, attempt: int, error: Exception | None = None) -> float:
        """Backoff delay before retry number ``attempt`` (0-based).

        An error carrying a ``retry_after`` hint (seconds) waits at least
        that long, still capped at ``max_delay``.
        """
        delay = self.base_delay * (self.backoff_factor ** attempt)
        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)


async def retry_with_callback(
    func: Callable[..., T],
    args: tuple = (),
    kwargs: dict | None = None,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, Exception], Any] | None = None,
) -> T:
    """Execute a function with retry logic and an optional retry callback.

    Args:
        func: Async function to execute
        args: Positional arguments for func
        kwargs: Keyword arguments for func
        config: Retry configuration
        on_retry: Callback called on each retry (attempt, exception)

    Returns:
        Result of func

    Raises:
        Exception: The last exception if all retries fail
    """
    if config is None:
        config = RetryConfig()
    if kwargs is None:
        kwargs = {}

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt >= config.max_retries:
                logger.error(
                    "retry_exhausted",
                    function=getattr(func, "__name__", repr(func)),
                    attempts=config.max_retries + 1,
                    error=str(e),
                )
                raise

            delay = config.delay_for(attempt, e)
            logger.warning(
                "retry_attempt",
                function=getattr(func, "__name__", repr(func)),
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay=delay,
                error=str(e),
            )

            if on_retry:
                try:
                    result = on_retry(attempt + 1, e)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as callback_error:
                    logger.warning(
                        "retry_callback_failed",
                        error=str(callback_error),
                    )

            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected retry state")
