"""
Deadline enforcement for blocking operations.

The guard runs the operation on its own daemon thread and waits for whichever
comes first: the result or the deadline. A timed-out operation is abandoned,
not stopped. It keeps running in the background until it returns on its own
and its result is discarded. Anything the abandoned operation opened (remote
temporary files, sockets, child processes) is not released by the guard;
pair it with a ResourceScope or give the operation its own cleanup.

Stopping work early requires the operation itself to poll a cancellation
token. Opaque blocking calls such as a device command have no such hook.
"""

import concurrent.futures
import functools
import threading
from typing import Any, Callable, TypeVar

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import ConfigurationError, DeviceMeshError

log = get_logger(__name__)

T = TypeVar("T")

_FUTURE_TIMEOUT_ERROR = concurrent.futures.TimeoutError


class TimeoutError(DeviceMeshError):
    """Raised when an operation times out."""

    def __init__(self, timeout_seconds: float, message: str | None = None):
        self.timeout_seconds = timeout_seconds
        self.message = message or f"Operation timed out after {timeout_seconds}s"
        super().__init__(self.message)


def _start_worker(func: Callable[[], T]) -> "concurrent.futures.Future[T]":
    future: concurrent.futures.Future[T] = concurrent.futures.Future()

    def worker() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = func()
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)

    thread = threading.Thread(target=worker, name="devicemesh-timeout", daemon=True)
    thread.start()
    return future


def _log_abandoned(future: "concurrent.futures.Future[Any]") -> None:
    error = future.exception()
    if error is not None:
        log.debug(f"Abandoned operation finished with error, discarded: {error}")
    else:
        log.debug("Abandoned operation finished, result discarded")


def run_with_timeout(
    func: Callable[[], T],
    timeout_seconds: float,
    message: str | None = None,
) -> T:
    """
    Run a blocking operation with a wall-clock deadline.

    ``func`` runs on a separate thread, so it must not rely on state that is
    only safe to touch from the calling thread.

    Args:
        func: Zero-argument operation to execute.
        timeout_seconds: Deadline in seconds (> 0).
        message: Custom error message (optional).

    Returns:
        The operation's result, if it finishes in time.

    Raises:
        TimeoutError: If the deadline elapses first. The operation keeps
            running in the background.
        ConfigurationError: If timeout_seconds is not positive.
        Any exception raised by ``func`` before the deadline, unchanged.

    Example:
        model = run_with_timeout(
            lambda: executor.execute(device_id, "getprop ro.product.model"),
            timeout_seconds=5.0,
        )
    """
    if timeout_seconds <= 0:
        raise ConfigurationError("timeout_seconds must be > 0")

    future = _start_worker(func)
    try:
        return future.result(timeout=timeout_seconds)
    except _FUTURE_TIMEOUT_ERROR:
        if future.done():
            # Either finished right at the deadline or raised a builtin TimeoutError itself
            return future.result()
        future.add_done_callback(_log_abandoned)
        raise TimeoutError(
            timeout_seconds,
            message or f"Operation timed out after {timeout_seconds}s",
        ) from None


def timeout(
    seconds: float,
    exception_message: str | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that applies a timeout to a blocking function.

    Args:
        seconds: Timeout in seconds.
        exception_message: Custom error message (optional).

    Returns:
        Decorated function that raises TimeoutError on timeout.

    Example:
        @timeout(5.0)
        def read_model(device_id):
            return executor.execute(device_id, "getprop ro.product.model")
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return run_with_timeout(lambda: func(*args, **kwargs), seconds, exception_message)

        return wrapper

    return decorator


class TimeoutPolicy:
    """
    A configurable timeout policy with a default deadline.

    Example:
        policy = TimeoutPolicy(default_timeout=30.0)

        output = policy.execute(lambda: executor.execute(device_id, "dumpsys battery"))
        output = policy.execute(slow_call, timeout_seconds=120.0)
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        default_message: str | None = None,
    ):
        """
        Initialize a timeout policy.

        Args:
            default_timeout: Default timeout in seconds (default: 30.0).
            default_message: Default error message for timeouts.
        """
        if default_timeout <= 0:
            raise ConfigurationError("default_timeout must be > 0")
        self.default_timeout = default_timeout
        self.default_message = default_message

    def execute(
        self,
        func: Callable[[], T],
        timeout_seconds: float | None = None,
        exception_message: str | None = None,
    ) -> T:
        """
        Execute an operation with this timeout policy.

        Args:
            func: Zero-argument operation to execute.
            timeout_seconds: Override timeout (uses default if None).
            exception_message: Custom error message (uses default if None).
        """
        timeout_sec = timeout_seconds if timeout_seconds is not None else self.default_timeout
        return run_with_timeout(func, timeout_sec, exception_message or self.default_message)

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """
        Use as a decorator with the default timeout.

        Example:
            @TimeoutPolicy(default_timeout=5.0)
            def read_model(device_id):
                ...
        """

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return self.execute(lambda: func(*args, **kwargs))

        return wrapper


__all__ = [
    "TimeoutError",
    "TimeoutPolicy",
    "run_with_timeout",
    "timeout",
]
