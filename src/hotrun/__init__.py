"""
hotrun: runs a Python program under a file watcher, compiling its modules
through a pluggable transformer and restarting it when its sources change.
"""

__version__ = "0.1.0"
