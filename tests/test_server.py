"""Tests for the coordinator side of the Source Bridge exchange."""

import multiprocessing
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from hotrun.bridge.messages import LoadRequest
from hotrun.bridge.server import SourceServer
from hotrun.compiler import TransformGateway


class RecordingChannel:

    def __init__(self) -> None:
        self.responses: List[Tuple[Optional[bytes], Optional[bytes]]] = []

    def write_response(self, code: Optional[bytes], position_map: Optional[bytes]) -> bool:
        self.responses.append((code, position_map))
        return True


@pytest.fixture
def exchange(gateway: TransformGateway):
    parent, child = multiprocessing.Pipe()
    channel = RecordingChannel()
    loaded: List[str] = []
    server = SourceServer(parent, channel, gateway, on_load=loaded.append)
    server.start()
    yield child, server, channel, loaded
    child.close()
    server.join(timeout=5)
    parent.close()


def _finish(child, server) -> None:
    child.close()
    server.join(timeout=5)
    assert not server.is_alive()


def test_requests_are_answered_in_order(exchange, tmp_path: Path) -> None:
    child, server, channel, loaded = exchange
    first, second = tmp_path / "a.py", tmp_path / "b.py"
    first.write_text("A = __marker__\n")
    second.write_text("B = 1\n")

    child.send(LoadRequest(str(first)))
    child.send(LoadRequest(str(second)))
    _finish(child, server)

    assert channel.responses == [(b"A = 'transformed'\n", None), (b"B = 1\n", None)]
    assert loaded == [str(first), str(second)]
    assert server.requests_served == 2


def test_ignored_path_gets_empty_frames(exchange, tmp_path: Path) -> None:
    child, server, channel, loaded = exchange
    data = tmp_path / "data.json"
    data.write_text("{}")

    child.send(LoadRequest(str(data)))
    _finish(child, server)

    assert channel.responses == [(None, None)]


def test_failed_compile_is_left_unanswered(exchange, gateway: TransformGateway, tmp_path: Path) -> None:
    child, server, channel, loaded = exchange
    broken = tmp_path / "broken.py"
    broken.write_text("SYNTAX ERROR\n")

    child.send(LoadRequest(str(broken)))
    _finish(child, server)

    assert channel.responses == []
    assert gateway.failed_paths() == [str(broken)]


def test_unexpected_messages_are_skipped(exchange, tmp_path: Path) -> None:
    child, server, channel, loaded = exchange
    module = tmp_path / "m.py"
    module.write_text("M = 1\n")

    child.send("hello")
    child.send(LoadRequest(str(module)))
    _finish(child, server)

    assert channel.responses == [(b"M = 1\n", None)]


def test_serving_error_answers_with_empty_frames(exchange, gateway: TransformGateway, monkeypatch, tmp_path: Path) -> None:
    child, server, channel, loaded = exchange
    module = tmp_path / "m.py"
    module.write_text("M = 1\n")

    def explode(path: str):
        raise RuntimeError("cache exploded")

    monkeypatch.setattr(gateway, "fetch", explode)
    child.send(LoadRequest(str(module)))
    _finish(child, server)

    assert channel.responses == [(None, None)]
