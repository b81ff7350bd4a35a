import os
import sys
import traceback
from typing import Dict, Optional, Set

from hotrun.bridge.posmap import PositionMap

# Leading traceback frames from hotrun's own bootstrap are hidden from the user.
_PACKAGE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "")
_RUNPY_FILES = ("runpy.py", "<frozen runpy>")


def _is_internal(filename: str) -> bool:
    return filename.startswith(_PACKAGE_DIR) or os.path.basename(filename) in _RUNPY_FILES


class PositionMapRegistry:
    """Position maps of every module the worker loaded from transformed source."""

    def __init__(self) -> None:
        self._maps: Dict[str, PositionMap] = {}

    def register(self, path: str, data: Optional[bytes]) -> None:
        position_map = PositionMap.from_bytes(data) if data else None
        if position_map is None:
            self._maps.pop(path, None)
        else:
            self._maps[path] = position_map

    def get(self, path: str) -> Optional[PositionMap]:
        return self._maps.get(path)

    def original_line(self, path: str, lineno: Optional[int]) -> Optional[int]:
        """Translates a line of transformed code, keeping it when unmapped."""
        position_map = self._maps.get(path)
        if position_map is None or not lineno:
            return lineno
        return position_map.original_line(lineno) or lineno

    def __contains__(self, path: object) -> bool:
        return path in self._maps


def translate_stack(stack: traceback.StackSummary, registry: PositionMapRegistry, trim_internal: bool = False) -> traceback.StackSummary:
    frames = list(stack)
    if trim_internal:
        while len(frames) > 1 and _is_internal(frames[0].filename):
            frames.pop(0)

    translated = []
    for frame in frames:
        if frame.filename in registry:
            frame = traceback.FrameSummary(
                frame.filename,
                registry.original_line(frame.filename, frame.lineno),
                frame.name,
            )
        translated.append(frame)
    return traceback.StackSummary.from_list(translated)


def translate_exception(
    exception: traceback.TracebackException,
    registry: PositionMapRegistry,
    trim_internal: bool = True,
    _seen: Optional[Set[int]] = None,
) -> None:
    """
    Rewrites line numbers of a TracebackException in place through the
    registered position maps, following causes, contexts and groups.
    """
    seen = _seen if _seen is not None else set()
    if id(exception) in seen:
        return
    seen.add(id(exception))

    exception.stack = translate_stack(exception.stack, registry, trim_internal)
    for chained in (exception.__cause__, exception.__context__):
        if chained is not None:
            translate_exception(chained, registry, False, seen)
    for nested in getattr(exception, "exceptions", None) or ():
        translate_exception(nested, registry, False, seen)


def install_exception_handler(registry: PositionMapRegistry) -> None:
    """Installs a sys.excepthook that reports original source positions."""

    def excepthook(exc_type, exc_value, exc_traceback):
        report = traceback.TracebackException(exc_type, exc_value, exc_traceback)
        translate_exception(report, registry)
        sys.stderr.write("".join(report.format()))
        sys.stderr.flush()

    sys.excepthook = excepthook
