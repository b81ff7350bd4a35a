"""
The Supervisor package.
Manages the lifecycle of the worker process.

This package contains the central Supervisor class and its helper modules,
which together handle starting, stopping and restarting the worker in
response to file changes, compile errors and operator commands.
"""
from .supervisor import Supervisor, SupervisorState

__all__ = ['Supervisor', 'SupervisorState']
