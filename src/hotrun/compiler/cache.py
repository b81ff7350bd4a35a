import os
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledArtifact:
    """The transformed form of one source file, valid for one modification time."""
    path: str
    code: Optional[bytes]
    position_map: Optional[bytes]
    source_mtime: int


def get_mtime(path: str) -> Optional[int]:
    """Returns the file's modification time in nanoseconds, or None if it is gone."""
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


class CompilationCache:
    """
    Memoizes compiled artifacts per absolute path, keyed by modification time.

    An entry is only ever served while its recorded modification time still
    matches the file on disk; any mismatch drops the entry and reports a miss
    so the caller recompiles.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CompiledArtifact] = {}
        self._lock = threading.RLock()

    def get(self, path: str) -> Optional[CompiledArtifact]:
        """
        Returns the cached artifact for a path if it is still fresh.

        :param path: Absolute path of the source file.
        :return: The artifact, or None on a miss.
        """
        with self._lock:
            artifact = self._entries.get(path)
            if artifact is None:
                return None
            if get_mtime(path) != artifact.source_mtime:
                log.debug(f"Cache entry for {path} is stale. Dropping it.")
                del self._entries[path]
                return None
            return artifact

    def put(self, path: str, artifact: CompiledArtifact) -> None:
        with self._lock:
            self._entries[path] = artifact

    def invalidate(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
