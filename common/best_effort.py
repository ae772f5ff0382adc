"""
FarmLink - Best-Effort Side Effects
====================================
Non-critical writes (cart clearing, denormalized counters) whose failure is
logged and never surfaced to the caller. The durable record they trail
(the order) stays the source of truth.
"""

import logging
from typing import Any, Callable

_default_logger = logging.getLogger("farmlink.best_effort")


def best_effort(label: str, func: Callable[..., Any], *args, logger: logging.Logger = None, **kwargs) -> bool:
    """
    Run func(*args, **kwargs); return True on success.
    Any exception is logged with its traceback and swallowed.
    """
    log = logger or _default_logger
    try:
        func(*args, **kwargs)
        return True
    except Exception:
        log.exception(f"Best-effort step failed: {label}")
        return False
