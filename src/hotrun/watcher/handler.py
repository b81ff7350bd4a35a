import os
import logging
import threading
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, List, Set

from watchdog.events import (
    EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED, FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from hotrun.events import ChangeEvent, ChangeKind, WatcherReady

log = logging.getLogger(__name__)

_EVENT_KINDS = {
    EVENT_TYPE_CREATED: ChangeKind.ADDED,
    EVENT_TYPE_MODIFIED: ChangeKind.MODIFIED,
    EVENT_TYPE_DELETED: ChangeKind.REMOVED,
}


class SourceChangeHandler(FileSystemEventHandler):
    """A watchdog event handler that forwards file changes to the Watcher."""

    def __init__(self, watcher: "Watcher") -> None:
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event) -> None:
        """The main event handler method for watchdog, called on any file change."""
        if event.is_directory:
            return

        if event.event_type == EVENT_TYPE_MOVED:
            self.watcher.dispatch(os.fsdecode(event.src_path), ChangeKind.REMOVED)
            self.watcher.dispatch(os.fsdecode(event.dest_path), ChangeKind.ADDED)
            return

        # Open and close notifications are not changes.
        kind = _EVENT_KINDS.get(event.event_type)
        if kind is not None:
            self.watcher.dispatch(os.fsdecode(event.src_path), kind)


class Watcher:
    """
    The change feed: watches the configured roots recursively and, through
    autowatch, individual files the worker reports loading.
    """

    def __init__(self, settings, on_event: Callable[[object], None]) -> None:
        self.on_event = on_event
        self.base_dir = Path(settings.BASE_DIR)
        self.roots: List[str] = [os.path.abspath(os.path.join(self.base_dir, p)) for p in settings.WATCH_PATHS]
        self.exclude_patterns: List[str] = list(settings.EXCLUDE_PATTERNS)
        self.use_polling = settings.USE_POLLING

        self._files: Set[str] = set()
        self._scheduled_dirs: Set[str] = set()
        self._lock = threading.Lock()
        self.handler = SourceChangeHandler(self)
        self.observer = self._create_observer()

    def _create_observer(self):
        return PollingObserver() if self.use_polling else Observer()

    #* --- Filtering ---
    def is_excluded(self, path: str) -> bool:
        try:
            relative = os.path.relpath(path, self.base_dir)
        except ValueError:
            relative = path
        parts = Path(path).parts
        for pattern in self.exclude_patterns:
            if fnmatch(path, pattern) or fnmatch(relative, pattern) or pattern in parts:
                return True
            if relative == pattern or relative.startswith(pattern.rstrip(os.sep) + os.sep):
                return True
        return False

    def _covered_by_root(self, path: str) -> bool:
        return any(path == root or path.startswith(os.path.join(root, "")) for root in self.roots)

    def is_watched(self, path: str) -> bool:
        if self._covered_by_root(path):
            return True
        with self._lock:
            return path in self._files

    #* --- Watch Set ---
    def _schedule_roots(self) -> None:
        for root in self.roots:
            if os.path.isdir(root):
                self.observer.schedule(self.handler, root, recursive=True)
            elif os.path.exists(root):
                self._schedule_file(root)
            else:
                log.warning(f"Watch path does not exist: {root}")
        with self._lock:
            directories = list(self._scheduled_dirs)
        for directory in directories:
            self.observer.schedule(self.handler, directory, recursive=False)

    def _schedule_file(self, path: str) -> None:
        directory = os.path.dirname(path)
        with self._lock:
            self._files.add(path)
            if directory in self._scheduled_dirs:
                return
            self._scheduled_dirs.add(directory)
        try:
            self.observer.schedule(self.handler, directory, recursive=False)
        except OSError as e:
            log.warning(f"Cannot watch {directory}: {e}")

    def add(self, path: str) -> None:
        """
        Starts watching a single file (the autowatch "watch-add" operation).
        Safe to call from any thread while the observer runs.

        :param path: The file's path, absolute or relative to the base dir.
        """
        path = os.path.abspath(os.path.join(self.base_dir, path))
        if self.is_excluded(path) or self.is_watched(path):
            return
        log.debug(f"Autowatch: {path}")
        self._schedule_file(path)

    def dispatch(self, path: str, kind: ChangeKind) -> None:
        path = os.path.abspath(path)
        if self.is_excluded(path) or not self.is_watched(path):
            return
        self.on_event(ChangeEvent(path, kind))

    def watched_count(self) -> int:
        with self._lock:
            return len(self.roots) + len(self._files)

    #* --- Observer Lifecycle ---
    def start(self) -> None:
        """Schedules the roots, starts the observer and reports readiness."""
        self._schedule_roots()
        self.observer.start()
        log.debug(f"Watching {len(self.roots)} root(s) with {type(self.observer).__name__}.")
        self.on_event(WatcherReady())

    def is_alive(self) -> bool:
        return self.observer.is_alive()

    def restart(self) -> None:
        self.stop()
        self.observer = self._create_observer()
        self._schedule_roots()
        self.observer.start()
        log.info("Observer restarted.")

    def stop(self) -> None:
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=5)
