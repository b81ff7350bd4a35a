"""
Shared pytest fixtures for the hotrun test suite.

Provides fixtures for:
- Settings isolated from the environment and any hotrun.json in the cwd
- A compilation cache and gateway wired to a counting transformer
- Small source trees written into a temporary directory
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

from hotrun.compiler import CompilationCache, TransformGateway, TransformResult
from hotrun.config import MergedSettings


class CountingTransformer:
    """Upper-cases a marker in the source and records every call."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    def __call__(self, path: str, options: Dict[str, Any]) -> TransformResult:
        self.calls.append(path)
        source = Path(path).read_text()
        if "SYNTAX ERROR" in source:
            raise SyntaxError(f"invalid syntax in {os.path.basename(path)}")
        return TransformResult(code=source.replace("__marker__", "'transformed'"))


@pytest.fixture
def settings(tmp_path: Path) -> MergedSettings:
    """Settings rooted at a temporary directory, with no console and fast timings."""
    merged = MergedSettings(overrides_path=tmp_path / "missing-hotrun.json")
    merged.set("BASE_DIR", tmp_path)
    merged.set("PIPE_DIR", tmp_path)
    merged.set("WATCH_PATHS", [])
    merged.set("EXCLUDE_PATTERNS", [])
    merged.set("ONLY_GLOBS", [])
    merged.set("IGNORE_GLOBS", [])
    merged.set("EXTENSIONS", [".py"])
    merged.set("DEBOUNCE_SECONDS", 0.05)
    merged.set("RESTART_TIMEOUT", 2.0)
    merged.set("SUPERVISOR_POLL_INTERVAL", 0.05)
    merged.set("CONSOLE_ENABLED", False)
    merged.set("CAPTURE_WORKER_OUTPUT", False)
    merged.set("PYTHON_EXECUTABLE", sys.executable)
    merged.set("WORKER_PYTHON_FLAGS", [])
    return merged


@pytest.fixture
def transformer() -> CountingTransformer:
    return CountingTransformer()


@pytest.fixture
def cache() -> CompilationCache:
    return CompilationCache()


@pytest.fixture
def gateway(cache: CompilationCache, transformer: CountingTransformer, tmp_path: Path) -> TransformGateway:
    return TransformGateway(cache, transformer, base_dir=tmp_path)


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """A small module whose source contains the transformer's marker."""
    path = tmp_path / "app.py"
    path.write_text("VALUE = __marker__\n")
    return path
