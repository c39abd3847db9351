from .dispatch import (
    DeviceResult,
    FanoutResult,
    dispatch,
    dispatch_online,
    filter_online,
    online_device_ids,
)
from .polling import wait_with_polling
from .retry import MAX_RETRY_DELAY, RetryPolicy, backoff_delays, run_with_retry
from .timeout import TimeoutError, TimeoutPolicy, run_with_timeout, timeout
from .ttl_cache import CacheEntry, TTLCache

__all__ = [
    "MAX_RETRY_DELAY",
    "CacheEntry",
    "DeviceResult",
    "FanoutResult",
    "RetryPolicy",
    "TTLCache",
    "TimeoutError",
    "TimeoutPolicy",
    "backoff_delays",
    "dispatch",
    "dispatch_online",
    "filter_online",
    "online_device_ids",
    "run_with_retry",
    "run_with_timeout",
    "timeout",
    "wait_with_polling",
]
