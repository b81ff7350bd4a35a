"""
The worker package.

Runs inside the disposable worker process: the import hook that fetches
transformed source over the Source Bridge, the uncaught-exception position
translator and the startup sequence.
"""

from .bootstrap import run_worker
from .exceptions import PositionMapRegistry, install_exception_handler
from .loader import BridgeClient, BridgeLoader, install, uninstall

__all__ = ['run_worker', 'PositionMapRegistry', 'install_exception_handler', 'BridgeClient', 'BridgeLoader', 'install', 'uninstall']
