"""Capped exponential backoff shared by the signed and public clients."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from okx_adapter.errors import NetworkError, OkxError, RequestTimeoutError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(error: Exception) -> bool:
    """Only failures where no usable response arrived are worth retrying."""
    return isinstance(error, (NetworkError, RequestTimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    """Retry an operation on transient failures with capped exponential backoff.

    The delay before retry k (1-indexed) is ``min(base_delay * 2**(k-1), max_delay)``.
    No delay precedes the first attempt, so an operation that keeps failing
    is called exactly ``max_retries + 1`` times.

    Attributes:
        max_retries: Extra attempts after the first one.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound on any single delay.
        is_retryable: Predicate deciding whether a failure is retried.
        sleep: Blocking sleep function (injectable for tests).
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 4.0
    is_retryable: Callable[[Exception], bool] = is_transient
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def delay_for(self, retry: int) -> float:
        """Return the delay in seconds before the given retry (1-indexed)."""
        return min(self.base_delay * (2 ** (retry - 1)), self.max_delay)

    def call(self, operation: Callable[[], T], description: str = "request") -> T:
        """Run ``operation`` until it succeeds, fails permanently or the budget runs out.

        Args:
            operation: Zero-argument callable performing one attempt.
            description: Label used in log lines.

        Returns:
            Whatever ``operation`` returns on its first successful attempt.

        Raises:
            OkxError: The last failure once retries are exhausted, or the
                first non-retryable failure.
        """
        retry = 0
        while True:
            try:
                return operation()
            except OkxError as e:
                if not self.is_retryable(e):
                    raise
                if retry >= self.max_retries:
                    logger.error(f"{description} failed after {retry + 1} attempts: {e}")
                    raise
                retry += 1
                delay = self.delay_for(retry)
                logger.warning(
                    f"{description} attempt {retry}/{self.max_retries + 1} failed ({e.kind}: {e}). "
                    f"Retrying in {delay:.2f}s"
                )
                self.sleep(delay)
