"""Tagged logging for the beatglow pipeline.

Output is ``[LEVEL][Tag] message | key=value``. Messages raised from the
audio callback or the tick loop go through ``log_throttled`` so a steady
fault logs about once per interval instead of at frame rate.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any

import numpy as np

_logger = logging.getLogger("beatglow")
if not _logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("[%(levelname)s][%(tag)s] %(message)s")
    handler.setFormatter(formatter)
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        tag = kwargs.pop("tag", "Beatglow")
        kwargs.setdefault("extra", {})["tag"] = tag
        return msg, kwargs


_logger_adapter = _TagAdapter(_logger, {})

# key -> (monotonic time of last emit, suppressed count since)
_throttle_state: dict[str, tuple[float, int]] = {}
_throttle_lock = threading.Lock()


def _level_value(level: str | None) -> int:
    level_name = (level or "INFO").upper()
    level_name = _LEVEL_ALIASES.get(level_name, level_name)
    value = getattr(logging, level_name, logging.INFO)
    return value if isinstance(value, int) else logging.INFO


def _format_value(value: Any) -> str:
    # numpy scalars print as np.float64(...) on numpy 2
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, np.ndarray):
        return f"ndarray{value.shape}"
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log a message with level+tag, appending key=value fields when provided."""
    level_val = _level_value(level)
    if not _logger.isEnabledFor(level_val):
        return
    if fields:
        extras = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items())
        message = f"{message} | {extras}"
    _logger_adapter.log(level_val, message, tag=tag)


def log_throttled(key: str, interval_s: float, level: str, tag: str, message: str,
                  **fields: Any) -> bool:
    """log_event at most once per ``interval_s`` for ``key``.

    The next emitted line carries ``suppressed=N`` when repeats were dropped.
    Returns True when the line was emitted.
    """
    now = time.monotonic()
    with _throttle_lock:
        last, suppressed = _throttle_state.get(key, (None, 0))
        if last is not None and now - last < interval_s:
            _throttle_state[key] = (last, suppressed + 1)
            return False
        _throttle_state[key] = (now, 0)
    if suppressed:
        fields["suppressed"] = suppressed
    log_event(level, tag, message, **fields)
    return True


def reset_throttle() -> None:
    with _throttle_lock:
        _throttle_state.clear()


def set_log_level(level: str) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR)."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    """Return current global log level name."""
    return logging.getLevelName(_logger.level)
