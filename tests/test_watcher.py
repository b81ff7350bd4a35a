"""Tests for the watchdog-based change feed."""

import time
import threading
from pathlib import Path
from typing import List

import pytest
from watchdog.events import DirModifiedEvent, FileClosedEvent, FileCreatedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from hotrun.events import ChangeEvent, ChangeKind, WatcherReady
from hotrun.watcher import SourceChangeHandler, Watcher


class Collector:

    def __init__(self) -> None:
        self.events: List[object] = []
        self.changed = threading.Event()

    def __call__(self, event: object) -> None:
        self.events.append(event)
        if isinstance(event, ChangeEvent):
            self.changed.set()

    @property
    def changes(self) -> List[ChangeEvent]:
        return [e for e in self.events if isinstance(e, ChangeEvent)]


@pytest.fixture
def collector() -> Collector:
    return Collector()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("x = 1\n")
    (tmp_path / "node_cache").mkdir()
    (tmp_path / "elsewhere").mkdir()
    return tmp_path


@pytest.fixture
def watcher(settings, project: Path, collector: Collector) -> Watcher:
    settings.WATCH_PATHS = ["src"]
    settings.EXCLUDE_PATTERNS = ["*.log", "node_cache"]
    watcher = Watcher(settings, collector)
    yield watcher
    watcher.stop()


class TestFiltering:

    def test_events_under_roots_pass(self, watcher: Watcher, project: Path, collector: Collector) -> None:
        watcher.dispatch(str(project / "src" / "app.py"), ChangeKind.MODIFIED)
        assert collector.changes == [ChangeEvent(str(project / "src" / "app.py"), ChangeKind.MODIFIED)]

    def test_unwatched_paths_are_dropped(self, watcher: Watcher, project: Path, collector: Collector) -> None:
        watcher.dispatch(str(project / "elsewhere" / "other.py"), ChangeKind.MODIFIED)
        assert collector.changes == []

    def test_excluded_patterns(self, watcher: Watcher, project: Path, collector: Collector) -> None:
        watcher.dispatch(str(project / "src" / "debug.log"), ChangeKind.MODIFIED)
        assert watcher.is_excluded(str(project / "node_cache" / "dep.py"))
        assert collector.changes == []

    def test_autowatched_file_passes(self, watcher: Watcher, project: Path, collector: Collector) -> None:
        target = project / "elsewhere" / "lib.py"
        target.write_text("y = 2\n")
        watcher.add(str(target))

        watcher.dispatch(str(target), ChangeKind.MODIFIED)
        watcher.dispatch(str(project / "elsewhere" / "sibling.py"), ChangeKind.MODIFIED)

        assert collector.changes == [ChangeEvent(str(target), ChangeKind.MODIFIED)]
        assert watcher.watched_count() == 2

    def test_add_skips_covered_and_excluded_paths(self, watcher: Watcher, project: Path) -> None:
        watcher.add(str(project / "src" / "app.py"))
        watcher.add(str(project / "node_cache" / "dep.py"))
        assert watcher.watched_count() == 1

    def test_relative_add_is_resolved_against_base_dir(self, watcher: Watcher, project: Path) -> None:
        watcher.add("elsewhere/lib.py")
        assert watcher.is_watched(str(project / "elsewhere" / "lib.py"))


class TestEventTranslation:

    @pytest.fixture
    def handler(self, watcher: Watcher) -> SourceChangeHandler:
        return SourceChangeHandler(watcher)

    def test_kinds(self, handler: SourceChangeHandler, project: Path, collector: Collector) -> None:
        path = str(project / "src" / "app.py")
        handler.on_any_event(FileCreatedEvent(path))
        handler.on_any_event(FileModifiedEvent(path))
        handler.on_any_event(FileDeletedEvent(path))

        assert [e.kind for e in collector.changes] == [ChangeKind.ADDED, ChangeKind.MODIFIED, ChangeKind.REMOVED]

    def test_move_is_removal_plus_addition(self, handler: SourceChangeHandler, project: Path, collector: Collector) -> None:
        src, dest = str(project / "src" / "old.py"), str(project / "src" / "new.py")
        handler.on_any_event(FileMovedEvent(src, dest))

        assert collector.changes == [ChangeEvent(src, ChangeKind.REMOVED), ChangeEvent(dest, ChangeKind.ADDED)]

    def test_directory_and_close_events_are_ignored(self, handler: SourceChangeHandler, project: Path, collector: Collector) -> None:
        handler.on_any_event(DirModifiedEvent(str(project / "src")))
        handler.on_any_event(FileClosedEvent(str(project / "src" / "app.py")))
        assert collector.changes == []


def test_live_change_is_reported(watcher: Watcher, project: Path, collector: Collector) -> None:
    watcher.start()
    assert isinstance(collector.events[0], WatcherReady)
    time.sleep(0.2)

    (project / "src" / "app.py").write_text("x = 2\n")

    assert collector.changed.wait(5)
    assert any(e.path == str(project / "src" / "app.py") for e in collector.changes)
