"""
The watcher package.

Adapts watchdog's file system events into the supervisor's change feed and
grows the watch set as the worker reports the files it loads.
"""

from .handler import SourceChangeHandler, Watcher

__all__ = ['SourceChangeHandler', 'Watcher']
