"""
Retry Policy

Bounded retry with exponential backoff for repository fetches and uploads.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Args:
        retries: Attempts after the first one
        backoff: Delay before the first retry, doubled on each further retry
        timeout: Per-request timeout in seconds
    """

    retries: int = 3
    backoff: float = 1.0
    timeout: float = 30.0

    def delay(self, attempt: int) -> float:
        return self.backoff * (2 ** attempt)


def call_with_retries(func: Callable[[], T], policy: RetryPolicy, describe: str,
                      transient: Tuple[Type[BaseException], ...],
                      is_transient: Callable[[BaseException], bool] = lambda e: True,
                      sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call `func`, retrying transient failures

    Args:
        func: Zero-argument callable to run
        policy: Retry bound and backoff
        describe: Short description for log lines
        transient: Exception types that may be retried
        is_transient: Further filter on a caught exception
        sleep: Sleep function (injectable for tests)

    Returns:
        Whatever `func` returns

    Raises:
        The last exception once the retry bound is exhausted, or immediately
        for non-transient failures
    """
    attempt = 0
    while True:
        try:
            return func()
        except transient as e:
            if not is_transient(e) or attempt >= policy.retries:
                raise
            delay = policy.delay(attempt)
            attempt += 1
            logger.warning(
                f"⚠ {describe} failed ({e}); retry {attempt}/{policy.retries} in {delay:.1f}s"
            )
            sleep(delay)
