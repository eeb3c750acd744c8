"""Tests for per-component logger setup."""

import logging

from logger_config import setup_logger


def test_setup_is_idempotent():
    first = setup_logger("test.component", "test.log")
    second = setup_logger("test.component", "test.log")

    assert first is second
    assert len(first.handlers) == len(second.handlers) >= 1


def test_noisy_libraries_are_quieted():
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("sqlalchemy").level == logging.WARNING
