"""
Logging module for hotrun.
This module provides the console logging setup used by the coordinator.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
