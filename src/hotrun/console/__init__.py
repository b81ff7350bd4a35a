"""
This module initializes the console package, exposing the operator commands
that can be typed into the coordinator's terminal while a worker runs.
"""

from .process import execute_command, start_console
from .handler import display_status, toggle_verbose_logging, print_help

__all__ = ["execute_command", "start_console", "display_status", "toggle_verbose_logging", "print_help"]
