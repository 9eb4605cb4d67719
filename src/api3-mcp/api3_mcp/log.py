"""Logger factory and the one-time startup notice."""

import logging
import threading
from typing import Optional

NOTICE = (
    "api3-mcp is read-only: staking, transfer and claim operations return unsigned "
    "call data and never sign or broadcast transactions."
)

_notice_lock = threading.Lock()
_notice_emitted = False


def get_logger(name: str = "api3_mcp", level: Optional[str] = None) -> logging.Logger:
    """Return a configured logger that prints to stderr."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    if level:
        logger.setLevel(level.upper())
    return logger


def emit_notice_once(logger: logging.Logger) -> bool:
    """
    Log NOTICE the first time it is called in this process.

    The flag lives for the lifetime of the process; reset_notice() restores
    the initial state (used by tests).
    """
    global _notice_emitted
    with _notice_lock:
        if _notice_emitted:
            return False
        _notice_emitted = True
    logger.warning(NOTICE)
    return True


def reset_notice() -> None:
    global _notice_emitted
    with _notice_lock:
        _notice_emitted = False
