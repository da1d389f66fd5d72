"""
Retry Logic — keeping a flaky model endpoint from stalling the creature.

Remote inference can hit rate limits, 5xx responses and dropped connections.
Transient failures are retried with capped exponential backoff and jitter;
anything else propagates immediately. The retry budget is small on purpose:
the creature has a heartbeat to keep, and a slow thought is worth less than the
next one.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

import anthropic
import httpx
import structlog

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 529})


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        exponential_base: float = 2.0,
        jitter_range: float = 0.25,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter_range = jitter_range

    @classmethod
    def from_config(cls, config) -> RetryConfig:
        """Build from an ``InferenceConfig``-shaped object."""
        return cls(
            max_retries=int(config.retry_max_retries),
            base_delay=float(config.retry_base_delay),
            max_delay=float(config.retry_max_delay),
            exponential_base=float(config.retry_exponential_base),
            jitter_range=float(config.retry_jitter_range),
        )


def is_retryable_error(error: BaseException) -> bool:
    """
    Whether ``error`` is transient.

    Retryable: rate limits, server errors (500/502/503/529), connection and
    timeout failures. Bad requests, auth failures and everything else are not.
    """
    if isinstance(error, (anthropic.RateLimitError, anthropic.InternalServerError)):
        return True
    if isinstance(error, anthropic.APIStatusError):
        return error.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (anthropic.APIConnectionError, httpx.TransportError)):
        return True
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    return False


def _retry_after(error: BaseException) -> Optional[float]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    try:
        value = response.headers.get("retry-after")
        return float(value) if value is not None else None
    except (AttributeError, TypeError, ValueError):
        return None


def compute_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

        delay = min(max_delay, base_delay * exponential_base ** attempt)
        delay += jitter in [-jitter_range * delay, +jitter_range * delay]

    A server-provided Retry-After wins, capped at ``max_delay``.
    """
    if retry_after is not None:
        return max(0.0, min(retry_after, config.max_delay))

    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)
    roll = (rng or random).random()
    jitter = delay * config.jitter_range * (2 * roll - 1)
    return max(0.05, delay + jitter)


async def with_retries(
    func: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> Any:
    """
    Await ``func()`` until it succeeds, a non-retryable error occurs, or the
    retry budget runs out. The last error is re-raised.
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                logger.warning(
                    "retry.non_retryable_error",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    attempt=attempt,
                )
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry.exhausted",
                    error_type=type(e).__name__,
                    error=str(e)[:200],
                    total_attempts=attempt + 1,
                )
                raise

            delay = compute_delay(attempt, config, _retry_after(e))
            logger.info(
                "retry.attempt",
                error_type=type(e).__name__,
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_seconds=round(delay, 2),
            )
            if on_retry:
                on_retry(attempt + 1, e, delay)
            await asyncio.sleep(delay)

    raise RuntimeError("with_retries exited without a result")
