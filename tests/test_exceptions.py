"""Tests for translating uncaught exception positions back to the original source."""

import sys
import traceback

import pytest

from hotrun.bridge.posmap import PositionMap
from hotrun.worker.exceptions import PositionMapRegistry, install_exception_handler, translate_exception

GENERATED = "\n".join([
    "# generated header",
    "# generated header",
    "def fail():",
    "    raise ValueError('boom')",
    "fail()",
]) + "\n"


def _run_generated(filename: str) -> BaseException:
    code = compile(GENERATED, filename, "exec")
    try:
        exec(code, {})
    except ValueError as e:
        return e
    pytest.fail("generated code did not raise")


@pytest.fixture
def registry() -> PositionMapRegistry:
    registry = PositionMapRegistry()
    registry.register("/virtual/app.py", PositionMap([None, None, 1, 2, 4]).to_bytes())
    return registry


class TestRegistry:

    def test_unmapped_lines_are_kept(self, registry: PositionMapRegistry) -> None:
        assert registry.original_line("/virtual/app.py", 1) == 1
        assert registry.original_line("/virtual/app.py", 4) == 2
        assert registry.original_line("/virtual/other.py", 9) == 9

    def test_registering_no_map_forgets_previous(self, registry: PositionMapRegistry) -> None:
        registry.register("/virtual/app.py", None)
        assert "/virtual/app.py" not in registry

    def test_malformed_map_is_not_registered(self) -> None:
        registry = PositionMapRegistry()
        registry.register("/virtual/app.py", b"garbage")
        assert "/virtual/app.py" not in registry


class TestTranslation:

    def test_frames_are_rewritten(self, registry: PositionMapRegistry) -> None:
        error = _run_generated("/virtual/app.py")
        report = traceback.TracebackException.from_exception(error)

        translate_exception(report, registry, trim_internal=False)

        lines = [(frame.filename, frame.lineno) for frame in report.stack if frame.filename == "/virtual/app.py"]
        assert lines == [("/virtual/app.py", 4), ("/virtual/app.py", 2)]

    def test_other_files_are_untouched(self, registry: PositionMapRegistry) -> None:
        error = _run_generated("/virtual/elsewhere.py")
        report = traceback.TracebackException.from_exception(error)

        translate_exception(report, registry, trim_internal=False)

        lines = [frame.lineno for frame in report.stack if frame.filename == "/virtual/elsewhere.py"]
        assert lines == [5, 4]

    def test_chained_exceptions_are_rewritten(self, registry: PositionMapRegistry) -> None:
        cause = _run_generated("/virtual/app.py")
        try:
            raise RuntimeError("wrapper") from cause
        except RuntimeError as e:
            report = traceback.TracebackException.from_exception(e)

        translate_exception(report, registry, trim_internal=False)

        assert [frame.lineno for frame in report.__cause__.stack if frame.filename == "/virtual/app.py"] == [4, 2]


def test_excepthook_prints_original_lines(registry: PositionMapRegistry, monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    install_exception_handler(registry)
    error = _run_generated("/virtual/app.py")

    sys.excepthook(type(error), error, error.__traceback__)

    err = capsys.readouterr().err
    assert 'File "/virtual/app.py", line 4, in <module>' in err
    assert 'File "/virtual/app.py", line 2, in fail' in err
    assert "ValueError: boom" in err
