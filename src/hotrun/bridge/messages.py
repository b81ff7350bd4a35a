"""
Control messages exchanged over the worker's control connection.

The coordinator sends exactly one `StartCommand`; afterwards the worker only
ever sends `LoadRequest`s, each answered on the Source Bridge channel.
"""
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class StartCommand:
    channel: str
    argv: List[str]
    handle_uncaught_exceptions: bool
    extensions: Tuple[str, ...]


@dataclass(frozen=True)
class LoadRequest:
    path: str
