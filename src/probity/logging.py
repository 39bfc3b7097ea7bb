# src/probity/logging.py
"""
Logging helpers.

Library code asks for a logger via `get_logger(__name__)` and never configures
handlers itself. A NullHandler sits on the package root so that importing
probity is silent by default.

Opt-in console output:
  - PROBITY_LOG_LEVEL=DEBUG|INFO|WARNING|...  attaches a stderr handler
  - PROBITY_VERBOSE=1                          shorthand for DEBUG
"""

from __future__ import annotations

import logging
import os
from typing import Optional

_ROOT = "probity"
_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_configured = False

logging.getLogger(_ROOT).addHandler(logging.NullHandler())


def _env_level() -> Optional[int]:
    raw = os.getenv("PROBITY_LOG_LEVEL")
    if raw:
        level = logging.getLevelName(raw.strip().upper())
        if isinstance(level, int):
            return level
    if os.getenv("PROBITY_VERBOSE"):
        return logging.DEBUG
    return None


def configure_logging(level: Optional[int | str] = None) -> None:
    """
    Attach a stderr handler to the `probity` logger.

    Called implicitly by `get_logger()` when the environment asks for output,
    and explicitly by the CLI (`--verbose`). Safe to call more than once.
    """
    global _configured
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    if level is None:
        level = _env_level()
    if level is None:
        return

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the `probity` namespace."""
    if not _configured and _env_level() is not None:
        configure_logging()
    if name != _ROOT and not name.startswith(_ROOT + "."):
        name = f"{_ROOT}.{name}"
    return logging.getLogger(name)


def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """
    Log a handled exception: one-line warning, traceback only at DEBUG.
    """
    logger.warning("%s: %s: %s", message, type(exc).__name__, exc)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Traceback for: %s", message, exc_info=exc)
