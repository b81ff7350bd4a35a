"""Tests for the named-pipe channel endpoint."""

import os
import stat
import threading
from pathlib import Path

import pytest

from hotrun.bridge import protocol
from hotrun.bridge.channel import BridgeChannel
from hotrun.errors import ChannelAllocationError, WorkerSpawnError

pytestmark = pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="requires named pipes")


class TestAllocation:

    def test_allocates_a_private_fifo(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        try:
            mode = os.stat(channel.path).st_mode
            assert stat.S_ISFIFO(mode)
            assert stat.S_IMODE(mode) == 0o600
        finally:
            channel.close()

    def test_paths_are_unique(self, tmp_path: Path) -> None:
        a = BridgeChannel.allocate(tmp_path)
        b = BridgeChannel.allocate(tmp_path)
        try:
            assert a.path != b.path
        finally:
            a.close()
            b.close()

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ChannelAllocationError):
            BridgeChannel.allocate(tmp_path / "does-not-exist")


class TestLifecycle:

    def test_exchange_with_reader(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        received = {}

        def reader() -> None:
            fd = os.open(channel.path, os.O_RDONLY)
            try:
                received["response"] = protocol.read_response(fd)
            finally:
                os.close(fd)

        thread = threading.Thread(target=reader)
        thread.start()
        channel.open_writer(lambda: True, timeout=5)
        assert channel.write_response(b"x = 1\n", None) is True
        thread.join(timeout=5)
        channel.close()

        assert received["response"].code == b"x = 1\n"

    def test_dead_worker_is_detected(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        try:
            with pytest.raises(WorkerSpawnError):
                channel.open_writer(lambda: False, timeout=5)
        finally:
            channel.close()

    def test_connect_timeout(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        try:
            with pytest.raises(WorkerSpawnError):
                channel.open_writer(lambda: True, timeout=0.05)
        finally:
            channel.close()

    def test_close_removes_pipe_and_is_idempotent(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        channel.close()
        channel.close()

        assert channel.closed
        assert not os.path.exists(channel.path)

    def test_writes_after_close_are_discarded(self, tmp_path: Path) -> None:
        channel = BridgeChannel.allocate(tmp_path)
        channel.close()
        assert channel.write_response(b"code", None) is False
