from __future__ import annotations

import logging

from changeforge.util.logging import configure_logging, get_logger, redact


def test_redacts_tokens():
    text = "Authorization: Bearer abc.def ghp_abcDEF123 github_pat_11AA_bb"
    redacted = redact(text)
    assert "abc.def" not in redacted
    assert "ghp_abcDEF123" not in redacted
    assert "github_pat_11AA_bb" not in redacted
    assert redacted.count("[REDACTED]") == 3


def test_redacts_explicit_secrets():
    assert redact("password=hunter2", ["hunter2", ""]) == "password=[REDACTED]"


def test_configure_logging_updates_existing_loggers():
    logger = get_logger("changeforge.tests.sample")
    try:
        configure_logging("debug")
        assert logger.level == logging.DEBUG
        configure_logging("not-a-level")
        assert logger.level == logging.INFO
    finally:
        configure_logging("INFO")
