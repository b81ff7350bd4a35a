import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, Set

log = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    path: str
    kind: ChangeKind


@dataclass(frozen=True)
class RestartRequest:
    """A coalesced intent to restart; `paths` only feeds the operator notice."""
    paths: FrozenSet[str] = frozenset()
    manual: bool = False


@dataclass(frozen=True)
class WatcherReady:
    pass


@dataclass(frozen=True)
class WorkerExited:
    generation: int
    returncode: Optional[int]


@dataclass(frozen=True)
class ShutdownRequest:
    reason: str = "requested"


class Debouncer:
    """
    Coalesces bursts of triggers into one trailing callback.

    Every trigger re-arms the timer; the callback fires once `interval`
    seconds pass without a new trigger and receives every path collected
    since the previous firing.
    """

    def __init__(self, interval: float, callback: Callable[[FrozenSet[str], bool], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._paths: Set[str] = set()
        self._manual = False
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._lock = threading.Lock()

    def trigger(self, path: Optional[str] = None, manual: bool = False) -> None:
        with self._lock:
            if path:
                self._paths.add(path)
            self._manual = self._manual or manual
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = threading.Timer(self.interval, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer cancelled too late to stop it is superseded by a newer one.
            if generation != self._generation:
                return
            paths, manual = frozenset(self._paths), self._manual
            self._paths.clear()
            self._manual = False
            self._timer = None
        self.callback(paths, manual)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1
            self._paths.clear()
            self._manual = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None
