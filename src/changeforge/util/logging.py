"""Logging helpers with secret redaction."""

from __future__ import annotations

import logging
import re
from typing import Iterable

_REDACTIONS = [
    (re.compile(r"Bearer\s+[A-Za-z0-9\-_.]+"), "Bearer [REDACTED]"),
    (re.compile(r"gh[pousr]_[A-Za-z0-9]+"), "[REDACTED]"),
    (re.compile(r"github_pat_[A-Za-z0-9_]+"), "[REDACTED]"),
]

_LEVEL = logging.INFO


def redact(text: str, extra_secrets: Iterable[str] | None = None) -> str:
    """Redact known token patterns and explicit secrets from text."""
    redacted = text
    for pattern, replacement in _REDACTIONS:
        redacted = pattern.sub(replacement, redacted)
    if extra_secrets:
        for secret in extra_secrets:
            if secret:
                redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


def configure_logging(level: str | int) -> None:
    """Set the level used by loggers created through `get_logger`."""
    global _LEVEL
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        _LEVEL = resolved if isinstance(resolved, int) else logging.INFO
    else:
        _LEVEL = level
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("changeforge"):
            logging.getLogger(name).setLevel(_LEVEL)


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(_LEVEL)
    return logger
