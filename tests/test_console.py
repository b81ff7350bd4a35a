"""Tests for the operator console."""

import io
import os
import logging

import pytest

from hotrun.console import execute_command, start_console


class FakeSupervisor:

    def __init__(self, settings) -> None:
        self.settings = settings
        self.restarts = 0
        self.snapshot = {
            "state": "blocked", "pid": None, "parked": False, "starts": 3, "watched": 7, "cached": 2,
            "errors": ["/p/broken.py"],
        }

    def request_restart(self) -> None:
        self.restarts += 1

    def status(self) -> dict:
        return dict(self.snapshot)


@pytest.fixture
def supervisor(settings) -> FakeSupervisor:
    return FakeSupervisor(settings)


def test_restart_command(supervisor: FakeSupervisor) -> None:
    execute_command(supervisor, "rs", [])
    assert supervisor.restarts == 1


def test_restart_command_is_configurable(supervisor: FakeSupervisor) -> None:
    supervisor.settings.RESTART_COMMAND = "reload"
    execute_command(supervisor, "rs", [])
    execute_command(supervisor, "reload", [])
    assert supervisor.restarts == 1


def test_status_output(supervisor: FakeSupervisor, capsys) -> None:
    execute_command(supervisor, "status", [])
    out = capsys.readouterr().out

    assert "BLOCKED" in out
    assert "not running" in out
    assert "/p/broken.py" in out


def test_status_shows_a_parked_worker(supervisor: FakeSupervisor, capsys) -> None:
    supervisor.snapshot.update(state="running", pid=os.getpid(), parked=True)
    execute_command(supervisor, "status", [])
    out = capsys.readouterr().out

    assert "RUNNING" in out
    assert "Parked" in out
    assert "/p/broken.py" in out


def test_unknown_command(supervisor: FakeSupervisor, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="hotrun.console.process"):
        execute_command(supervisor, "frobnicate", [])
    assert "Unknown command: 'frobnicate'" in caplog.text


def test_console_reads_until_eof(supervisor: FakeSupervisor) -> None:
    thread = start_console(supervisor, io.StringIO("rs\n\n  rs  \nhelp\n"))
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert supervisor.restarts == 2
