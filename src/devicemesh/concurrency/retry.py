import functools
import time
from collections.abc import Callable, Iterator
from typing import Any, Optional, TypeVar

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import ConfigurationError

log = get_logger(__name__)

T = TypeVar("T")

MAX_RETRY_DELAY = 10.0


class RetryPolicy:
    """
    Retry budget and backoff schedule for a blocking operation.

    The first attempt is always made. ``max_retries`` bounds the additional
    attempts after failures, so a permanently failing operation runs
    ``max_retries + 1`` times. The delay before the first retry is exactly
    ``initial_delay`` and doubles after every further failure, capped at
    ``max_delay``. There is no jitter.

    Example:
        policy = RetryPolicy(max_retries=3, initial_delay=0.5)

        output = policy.execute(lambda: executor.execute("emulator-5554", "getprop"))

        @RetryPolicy(max_retries=2, initial_delay=0.1)
        def probe():
            return executor.list_devices()
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = MAX_RETRY_DELAY,
        retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    ):
        """
        Initialize a retry policy.

        Args:
            max_retries: Number of retries after the first failed attempt (>= 0).
            initial_delay: Delay in seconds before the first retry (>= 0).
            max_delay: Ceiling for the doubled delay (default: 10 seconds).
            retryable_exceptions: Exception types that trigger a retry. Anything
                else propagates immediately.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            raise ConfigurationError("max_retries must be a non-negative integer")
        if initial_delay < 0:
            raise ConfigurationError("initial_delay must be >= 0")
        if max_delay < 0:
            raise ConfigurationError("max_delay must be >= 0")

        self.max_retries: int = max_retries
        self.initial_delay: float = initial_delay
        self.max_delay: float = max_delay
        self.retryable_exceptions: tuple[type[BaseException], ...] = retryable_exceptions

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, initial_delay={self.initial_delay}, "
            f"max_delay={self.max_delay})"
        )

    def execute(self, func: Callable[[], T]) -> T:
        """Execute a function with this retry policy."""
        return run_with_retry(self, func)

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """
        Use as a decorator for blocking functions.

        Example:
            @RetryPolicy(max_retries=3, initial_delay=0.5)
            def read_battery(device_id):
                ...
        """

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return run_with_retry(self, lambda: func(*args, **kwargs))

        return wrapper


def backoff_delays(policy: RetryPolicy) -> Iterator[float]:
    """
    Yield the delays slept before each retry under ``policy``.

    The sequence has exactly ``policy.max_retries`` elements.

    Example:
        list(backoff_delays(RetryPolicy(max_retries=6, initial_delay=1.0)))
        # [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
    """
    delay = policy.initial_delay
    for _ in range(policy.max_retries):
        yield delay
        delay = min(delay * 2, policy.max_delay)


def run_with_retry(
    policy: RetryPolicy,
    func: Callable[[], T],
    context: Optional[dict[str, Any]] = None,
) -> T:
    """
    Run a blocking operation, retrying failures with exponential backoff.

    The calling thread sleeps between attempts. The operation is assumed to be
    idempotent; nothing here checks that.

    Args:
        policy: Retry budget and delay schedule.
        func: Zero-argument operation to execute.
        context: Extra log fields for the retry records, e.g. device_id and command.

    Returns:
        The return value of the first successful attempt.

    Raises:
        The exception from the last attempt, unchanged, once the budget is
        spent. Exceptions outside ``policy.retryable_exceptions`` are raised
        on first occurrence.

    Example:
        output = run_with_retry(
            RetryPolicy(max_retries=3, initial_delay=1.0),
            lambda: executor.execute(device_id, "dumpsys battery"),
        )
    """
    delay = policy.initial_delay
    failures = 0
    extra = dict(context or {})

    while True:
        try:
            return func()
        except policy.retryable_exceptions as e:
            failures += 1
            if failures > policy.max_retries:
                if policy.max_retries > 0:
                    log.error(
                        f"Operation failed after {policy.max_retries} retries: {e}",
                        extra={**extra, "attempt": failures, "max_retries": policy.max_retries},
                    )
                raise

            log.warning(
                f"Operation failed (retry {failures}/{policy.max_retries}), retrying in {delay:.2f}s: {e}",
                extra={
                    **extra,
                    "attempt": failures,
                    "remaining": policy.max_retries - failures,
                    "next_delay": delay,
                },
            )

            time.sleep(delay)
            delay = min(delay * 2, policy.max_delay)


__all__ = ["MAX_RETRY_DELAY", "RetryPolicy", "backoff_delays", "run_with_retry"]
