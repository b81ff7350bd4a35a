"""
The transformer contract and the default transformer.

A transformer is any callable ``transform(path, options)`` that returns a
`TransformResult`, returns `IGNORED` to decline the file, or raises to
report a compile failure. It is named in the settings by an import string
such as ``"package.module:function"``.
"""
import importlib
import importlib.util
import json
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from hotrun.bridge.posmap import PositionMap
from hotrun.errors import TransformerLoadError


class _IgnoredMarker:
    """Returned by a transformer that declines to process a file."""

    def __repr__(self) -> str:
        return "IGNORED"


IGNORED = _IgnoredMarker()


class TransformResult(NamedTuple):
    code: str
    position_map: Union[PositionMap, Dict[str, Any], str, bytes, None] = None


Transformer = Callable[[str, Dict[str, Any]], Union[TransformResult, _IgnoredMarker]]


def serialize_position_map(position_map: Union[PositionMap, Dict[str, Any], str, bytes, None]) -> Optional[bytes]:
    """Converts whatever map form a transformer returned into wire bytes."""
    if position_map is None:
        return None
    if isinstance(position_map, PositionMap):
        return position_map.to_bytes()
    if isinstance(position_map, bytes):
        return position_map
    if isinstance(position_map, str):
        return position_map.encode("utf-8")
    return json.dumps(position_map).encode("utf-8")


def load_transformer(target: Union[str, Transformer]) -> Transformer:
    """
    Resolves a transformer from an import string.

    :param target: ``"package.module:function"`` or an already-resolved callable.
    :return: The transformer callable.
    :raises TransformerLoadError: If the string is malformed or cannot be imported.
    """
    if callable(target):
        return target

    module_name, _, attribute = str(target).partition(":")
    if not module_name or not attribute:
        raise TransformerLoadError(f"Transformer '{target}' must look like 'package.module:function'.")
    try:
        module = importlib.import_module(module_name)
        transformer = getattr(module, attribute)
    except (ImportError, AttributeError) as e:
        raise TransformerLoadError(f"Cannot load transformer '{target}': {e}") from e
    if not callable(transformer):
        raise TransformerLoadError(f"Transformer '{target}' is not callable.")
    return transformer


def passthrough(path: str, options: Dict[str, Any]) -> TransformResult:
    """
    The default transformer: returns the source unchanged.

    The source is byte-compiled first so that a syntax error is reported as
    a compile failure and holds back the restart until it is fixed.
    """
    with open(path, "rb") as f:
        data = f.read()
    source = importlib.util.decode_source(data)
    compile(source, path, "exec", dont_inherit=True)
    return TransformResult(code=source)
