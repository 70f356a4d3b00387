"""
Retry with exponential backoff for upstream calls.
"""

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger

logger = get_logger("retry")


class RetryConfig:
    """Backoff settings: attempt ``n`` waits ``base_delay * exponential_base ** (n - 1)``,
    capped at ``max_delay`` and spread by 10% jitter."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


class RetryError(Exception):
    """All attempts failed; ``last_exception`` is the final failure."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    delay = min(config.base_delay * (config.exponential_base ** (attempt - 1)), config.max_delay)
    if config.jitter:
        delay += random.uniform(-0.1 * delay, 0.1 * delay)
    return max(0.0, delay)


def retry_on_exception(exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Retry an async callable on ``exceptions``; raise RetryError once attempts run out.

    Anything not listed in ``exceptions`` propagates on the first occurrence.
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        name = getattr(func, "__qualname__", repr(func))

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            attempt = 1
            while True:
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= config.max_attempts:
                        logger.error("Retries exhausted", function=name, attempts=attempt, error=str(e))
                        raise RetryError(
                            f"{name} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt,
                        ) from e

                    delay = backoff_delay(attempt, config)
                    logger.warning("Attempt failed, backing off", function=name,
                                   attempt=attempt, delay=round(delay, 3), error=str(e))
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", function=name, attempt=attempt)
                return result

        return wrapper

    return decorator
