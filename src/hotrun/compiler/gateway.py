import os
import logging
import threading
import traceback
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Set, Union

from hotrun.compiler.cache import CompilationCache, CompiledArtifact, get_mtime
from hotrun.compiler.transform import IGNORED, TransformResult, Transformer, load_transformer, serialize_position_map

log = logging.getLogger(__name__)

THIRD_PARTY_DIRS = ("site-packages", "dist-packages")


class Compiled(NamedTuple):
    artifact: CompiledArtifact


class Ignored(NamedTuple):
    reason: str


class Failed(NamedTuple):
    error: str


Outcome = Union[Compiled, Ignored, Failed]


class TransformGateway:
    """
    Calls the configured transformer and classifies its outcome.

    Successful results are written through to the compilation cache. Failures
    are recorded in the error set, which holds back worker restarts until the
    failing file changes or disappears. Files excluded by the ignore policy
    are remembered so the transformer is not consulted for them again.
    """

    def __init__(
        self,
        cache: CompilationCache,
        transformer: Union[str, Transformer],
        options: Optional[Dict[str, Any]] = None,
        extensions: Iterable[str] = (".py",),
        only_globs: Iterable[str] = (),
        ignore_globs: Iterable[str] = (),
        base_dir: Optional[Path] = None,
    ) -> None:
        self.cache = cache
        self.transformer = load_transformer(transformer)
        self.options = dict(options or {})
        self.extensions = tuple(extensions)
        self.only_globs = list(only_globs)
        self.ignore_globs = list(ignore_globs)
        self.base_dir = Path(base_dir or os.getcwd())

        self._errors: Dict[str, str] = {}
        self._ignored: Set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, cache: CompilationCache) -> "TransformGateway":
        """Builds a gateway from a MergedSettings instance."""
        return cls(
            cache,
            settings.TRANSFORMER,
            options=settings.TRANSFORM_OPTIONS,
            extensions=settings.EXTENSIONS,
            only_globs=settings.ONLY_GLOBS,
            ignore_globs=settings.IGNORE_GLOBS,
            base_dir=settings.BASE_DIR,
        )

    #* --- Ignore Policy ---
    def _matches(self, path: str, pattern: str) -> bool:
        try:
            relative = os.path.relpath(path, self.base_dir)
        except ValueError:
            relative = path
        return fnmatch(path, pattern) or fnmatch(relative, pattern)

    def ignore_reason(self, path: str) -> Optional[str]:
        """
        Applies the include/exclude rules to a path.

        :param path: Absolute path of the source file.
        :return: Why the path is ignored, or None if it should be transformed.
        """
        if os.path.splitext(path)[1] not in self.extensions:
            return "extension not transformed"

        if not self.only_globs and not self.ignore_globs:
            # Third-party trees are left alone by default.
            if any(part in THIRD_PARTY_DIRS for part in Path(path).parts):
                return "third-party package"
            return None

        if self.only_globs and not any(self._matches(path, p) for p in self.only_globs):
            return "not matched by only globs"
        if any(self._matches(path, p) for p in self.ignore_globs):
            return "matched by ignore globs"
        return None

    #* --- Compilation ---
    def compile(self, path: str) -> Outcome:
        """
        Transforms a file and classifies the result.

        :param path: Absolute path of the source file.
        :return: Compiled, Ignored or Failed.
        """
        reason = self.ignore_reason(path)
        if reason:
            return self._mark_ignored(path, reason)

        # Captured before transforming so an edit made meanwhile is not masked.
        mtime = get_mtime(path)
        if mtime is None:
            return Ignored("file not found")

        log.debug(f"Transforming {path}")
        try:
            result = self.transformer(path, dict(self.options))
            if result is IGNORED:
                return self._mark_ignored(path, "declined by transformer")
            artifact = self._build_artifact(path, result, mtime)
        except Exception as e:
            diagnostic = "".join(traceback.format_exception_only(type(e), e)).rstrip()
            if get_mtime(path) != mtime:
                # Edited mid-transform: the pending change event decides what happens next.
                log.debug(f"Discarding stale compilation error for {path}: {diagnostic}")
                return Failed(diagnostic)
            with self._lock:
                self._errors[path] = diagnostic
            log.error(f"Compilation failed for {path}:\n{diagnostic}")
            log.debug("Transformer traceback:", exc_info=True)
            return Failed(diagnostic)

        self.cache.put(path, artifact)
        with self._lock:
            if self._errors.pop(path, None) is not None:
                log.info(f"Compilation error in {path} resolved.")
        return Compiled(artifact)

    def _build_artifact(self, path: str, result: Any, mtime: int) -> CompiledArtifact:
        """
        Normalises a transformer's return value into a cache artifact.

        :raises TypeError: If the transformer returned something other than a
            string or a TransformResult carrying a string.
        """
        if isinstance(result, str):
            result = TransformResult(code=result)
        if not isinstance(result, TransformResult):
            raise TypeError(f"Transformer returned {type(result).__name__}, expected str or TransformResult")
        if not isinstance(result.code, str):
            raise TypeError(f"Transformer returned code of type {type(result.code).__name__}, expected str")
        return CompiledArtifact(
            path=path,
            code=result.code.encode("utf-8"),
            position_map=serialize_position_map(result.position_map),
            source_mtime=mtime,
        )

    def fetch(self, path: str) -> Outcome:
        """Serves a path from the cache, the ignored set, or a fresh compile."""
        artifact = self.cache.get(path)
        if artifact is not None:
            return Compiled(artifact)
        with self._lock:
            if path in self._ignored:
                return Ignored("previously ignored")
        return self.compile(path)

    def _mark_ignored(self, path: str, reason: str) -> Ignored:
        with self._lock:
            self._ignored.add(path)
        log.debug(f"Not transforming {path}: {reason}")
        return Ignored(reason)

    #* --- Error & Invalidation Bookkeeping ---
    def clear(self, path: str) -> None:
        """Forgets everything known about a path after it changed on disk."""
        self.cache.invalidate(path)
        with self._lock:
            self._ignored.discard(path)
            self._errors.pop(path, None)

    def has_errors(self) -> bool:
        with self._lock:
            return bool(self._errors)

    def failed_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._errors)

    def is_ignored(self, path: str) -> bool:
        with self._lock:
            return path in self._ignored
