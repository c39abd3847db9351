"""
Logging setup shared by every devicemesh module.

Records emitted around device work carry structured fields through
``extra`` (``device_id``, ``command``, and the retry counters). The formatter
renders whichever of them are present as a trailing ``[key=value ...]``
block, so a retry warning reads like:

    2024-05-01 13:04:05 | WARNING | devicemesh.concurrency.retry | Operation failed (retry 1/3), retrying in 1.00s: device offline [device=emulator-5554 command='pidof com.example.app' attempt=1/3 next_delay=1.00s]
"""

import logging
import os
import sys
from typing import Any, ClassVar, Optional

from devicemesh.errors import ConfigurationError

_DEFAULT_FORMAT = os.getenv(
    "DEVICEMESH_LOG_FORMAT",
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s%(context)s",
)
_DEFAULT_DATEFMT = os.getenv("DEVICEMESH_LOG_DATEFMT", "%Y-%m-%d %H:%M:%S")
_FALLBACK_LEVEL = "INFO"
_configured: Any = False

# Record attributes rendered into the context block, in display order
CONTEXT_FIELDS = ("device_id", "command", "attempt", "remaining", "next_delay")


def _supports_color() -> bool:
    try:
        return sys.stdout.isatty() and os.getenv("NO_COLOR") is None
    except Exception:
        return False


def format_context(record: logging.LogRecord) -> str:
    """Render the device and retry fields attached to a record, or "" if it has none."""
    parts = []
    for field in CONTEXT_FIELDS:
        value = getattr(record, field, None)
        if value is None:
            continue
        if field == "device_id":
            parts.append(f"device={value}")
        elif field == "command":
            parts.append(f"command={value!r}")
        elif field == "attempt" and getattr(record, "max_retries", None) is not None:
            parts.append(f"attempt={value}/{record.max_retries}")
        elif field == "next_delay":
            parts.append(f"next_delay={value:.2f}s")
        else:
            parts.append(f"{field}={value}")
    return f" [{' '.join(parts)}]" if parts else ""


class _DeviceContextFormatter(logging.Formatter):
    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\x1b[37m",  # light gray
        "INFO": "\x1b[32m",  # green
        "WARNING": "\x1b[33m",  # yellow
        "ERROR": "\x1b[31m",  # red
        "CRITICAL": "\x1b[41m",  # red background
    }
    CONTEXT_COLOR: ClassVar[str] = "\x1b[90m"
    RESET: ClassVar[str] = "\x1b[0m"

    def __init__(self, fmt: str, datefmt: str, use_color: bool):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        context = format_context(record)
        if self.use_color:
            levelname = record.levelname
            color = self.COLORS.get(levelname, "")
            record.levelname_color = f"{color}{levelname}{self.RESET}" if color else levelname
            record.context = f"{self.CONTEXT_COLOR}{context}{self.RESET}" if context else ""
        else:
            record.levelname_color = record.levelname
            record.context = context
        return super().format(record)


def _resolve_level(level: Optional[str | int]) -> tuple[str | int, Optional[str]]:
    """Return the level to use and, if the configured one was unusable, why."""
    from devicemesh.config.environment import LOG_LEVELS, Environment

    if level is None:
        # Runs while modules are imported, so a bad setting must not break the import
        try:
            return Environment.get_log_level(), None
        except ConfigurationError as e:
            return _FALLBACK_LEVEL, str(e)

    if isinstance(level, str):
        level = level.upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"Log level must be one of {sorted(LOG_LEVELS)}, got {level!r}")
    return level, None


def configure_logging(
    level: Optional[str | int] = None,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    propagate_root: bool = False,
) -> str | int:
    """Configure root logging once with a consistent format.

    An explicit ``level`` is validated strictly. Without one, the level comes
    from ``DEVICEMESH_LOG_LEVEL``; an invalid value there falls back to INFO
    with a warning.

    Environment overrides:
    - `DEVICEMESH_LOG_LEVEL`
    - `DEVICEMESH_LOG_FORMAT`
    - `DEVICEMESH_LOG_DATEFMT`

    Raises:
        ConfigurationError: If an explicit level name is unknown.
    """
    global _configured

    level, problem = _resolve_level(level)

    if _configured and _configured == level:
        return level
    _configured = level

    use_color = _supports_color()
    if fmt is None:
        if os.getenv("DEVICEMESH_LOG_FORMAT") is None and use_color:
            fmt = "\x1b[90m%(asctime)s\x1b[0m | %(levelname_color)s | \x1b[36m%(name)s\x1b[0m | %(message)s%(context)s"
        else:
            fmt = _DEFAULT_FORMAT
    datefmt = datefmt if datefmt is not None else _DEFAULT_DATEFMT
    formatter = _DeviceContextFormatter(fmt=fmt, datefmt=datefmt, use_color=use_color)

    root = logging.getLogger()
    if root.handlers:
        # Existing handlers (e.g. pytest's) keep their place, only level and format change
        root.setLevel(level)
        for h in root.handlers:
            if isinstance(h, logging.StreamHandler):
                h.setLevel(level)
                h.setFormatter(formatter)
    else:
        logging.basicConfig(level=level, format=fmt, datefmt=datefmt)
        for h in root.handlers:
            if isinstance(h, logging.StreamHandler):
                h.setFormatter(formatter)
    root.propagate = propagate_root

    if problem is not None:
        logging.getLogger(__name__).warning(f"{problem}; using {_FALLBACK_LEVEL}")
    return level


def get_logger(name: str) -> logging.Logger:
    """Return a module-scoped logger."""
    level = configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
