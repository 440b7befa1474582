"""Logging helpers shared by every capture-bridge module."""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DEFAULT_LEVEL = logging.INFO
_LOGGING_CONFIGURED = False


def _resolve_level(level: int | str | None) -> int:
    """Resolves explicit level, then LOG_LEVEL, then INFO."""
    candidate: int | str | None = level
    if candidate is None:
        candidate = os.getenv("LOG_LEVEL")
    if candidate is None or candidate == "":
        return _DEFAULT_LEVEL
    if isinstance(candidate, int):
        return candidate
    resolved = logging.getLevelName(candidate.strip().upper())
    return resolved if isinstance(resolved, int) else _DEFAULT_LEVEL


def configure_logging(level: int | str | None = None) -> int:
    """Configures root logging once and returns the applied level."""
    global _LOGGING_CONFIGURED
    applied_level = _resolve_level(level)
    root_logger = logging.getLogger()
    if not _LOGGING_CONFIGURED and not root_logger.handlers:
        logging.basicConfig(format=LOG_FORMAT, level=applied_level)
        for handler in root_logger.handlers:
            handler.setLevel(applied_level)
    root_logger.setLevel(applied_level)
    _LOGGING_CONFIGURED = True
    return applied_level


def get_logger(name: str) -> logging.Logger:
    """Returns a module logger, configuring logging on first use only."""
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)
