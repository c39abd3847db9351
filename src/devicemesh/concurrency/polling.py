import time
from collections.abc import Callable

from devicemesh.config.logging_config import get_logger
from devicemesh.errors import ConfigurationError

log = get_logger(__name__)


def wait_with_polling(
    condition: Callable[[], bool],
    timeout_seconds: float,
    poll_interval: float,
    on_tick: Callable[[float], None] | None = None,
) -> bool:
    """
    Poll ``condition`` until it holds or the timeout elapses.

    Errors raised by ``condition`` are logged and treated as "not yet", so a
    device that drops off the bus mid-wait does not abort the wait.

    Args:
        condition: Zero-argument check; truthy means done.
        timeout_seconds: Total time to wait.
        poll_interval: Sleep between checks.
        on_tick: Called with the elapsed seconds before each check.

    Returns:
        True if the condition held in time, False on timeout.

    Example:
        ready = wait_with_polling(
            lambda: orchestrator.is_device_online("emulator-5554"),
            timeout_seconds=30.0,
            poll_interval=0.5,
        )
    """
    if timeout_seconds <= 0:
        raise ConfigurationError("timeout_seconds must be > 0")
    if poll_interval <= 0:
        raise ConfigurationError("poll_interval must be > 0")

    start = time.monotonic()
    while True:
        elapsed = time.monotonic() - start
        if elapsed > timeout_seconds:
            return False

        if on_tick is not None:
            on_tick(elapsed)

        try:
            if condition():
                return True
        except Exception as e:
            log.warning(f"Error while checking condition: {e}")

        time.sleep(poll_interval)


__all__ = ["wait_with_polling"]
