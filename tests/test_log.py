"""Tests for the coordinator's logging setup."""

import logging

import pytest

from hotrun.log import setup_logging
from hotrun.log.setup import MainFormatter


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(name: str, message: str) -> logging.LogRecord:
    return logging.LogRecord(name, logging.INFO, __file__, 1, message, None, None)


def test_regular_records_are_formatted() -> None:
    line = MainFormatter().format(_record("hotrun.supervisor", "Started app.py"))
    assert line.endswith(" - INFO     - [hotrun.supervisor] - Started app.py")


def test_worker_output_is_printed_raw() -> None:
    assert MainFormatter().format(_record("proc.worker", "listening on :8000")) == "listening on :8000"


def test_setup_installs_a_single_console_handler(restore_root_logger) -> None:
    setup_logging(logging.WARNING)
    setup_logging(logging.DEBUG)

    root = restore_root_logger
    assert len(root.handlers) == 1
    assert root.handlers[0].level == logging.DEBUG
    assert isinstance(root.handlers[0].formatter, MainFormatter)
    assert logging.getLogger("watchdog").level == logging.INFO
