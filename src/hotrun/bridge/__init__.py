"""
The Source Bridge package.

Defines the framed byte protocol, the named-pipe channel and the control
messages that let a worker fetch transformed source from the coordinator
synchronously, one module load at a time.
"""

from .channel import BridgeChannel
from .messages import LoadRequest, StartCommand
from .posmap import PositionMap
from .protocol import SourceResponse, read_response, write_response

__all__ = ['BridgeChannel', 'LoadRequest', 'StartCommand', 'PositionMap', 'SourceResponse', 'read_response', 'write_response']
