"""
The Source Bridge wire format.

Each response to a load request is two consecutive frames on the channel:
a 4-byte big-endian unsigned length followed by that many bytes. The first
frame carries the transformed source, the second the serialized position
map. A zero length means "absent": no transformed source (load the file
natively) or no map.
"""
import os
import struct
import logging
from typing import NamedTuple, Optional

from hotrun.errors import ChannelClosed

log = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct(">I")


class SourceResponse(NamedTuple):
    code: Optional[bytes]
    position_map: Optional[bytes]


#* --- Encoding ---
def encode_frame(payload: Optional[bytes]) -> bytes:
    payload = payload or b""
    return LENGTH_PREFIX.pack(len(payload)) + payload


def encode_response(code: Optional[bytes], position_map: Optional[bytes]) -> bytes:
    return encode_frame(code) + encode_frame(position_map)


#* --- Worker Side: Blocking Reads ---
def read_exact(fd: int, size: int) -> bytes:
    """
    Blocks until exactly `size` bytes have been read from `fd`.

    Short reads are expected on pipes; reading simply continues into the same
    buffer until the declared count is satisfied.

    :param fd: A file descriptor opened for blocking reads.
    :param size: The number of bytes to read.
    :return: The bytes read.
    :raises ChannelClosed: If end-of-file is reached before `size` bytes arrive.
    """
    buffer = bytearray()
    while len(buffer) < size:
        chunk = os.read(fd, size - len(buffer))
        if not chunk:
            raise ChannelClosed(f"Channel closed after {len(buffer)} of {size} bytes.")
        buffer += chunk
    return bytes(buffer)


def read_frame(fd: int) -> Optional[bytes]:
    """Reads one length-prefixed frame. A zero-length frame is returned as None."""
    (length,) = LENGTH_PREFIX.unpack(read_exact(fd, LENGTH_PREFIX.size))
    if length == 0:
        return None
    return read_exact(fd, length)


def read_response(fd: int) -> SourceResponse:
    """Reads the two frames that answer one load request."""
    code = read_frame(fd)
    position_map = read_frame(fd)
    return SourceResponse(code, position_map)


#* --- Coordinator Side: Writes ---
def write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def write_response(fd: int, code: Optional[bytes], position_map: Optional[bytes]) -> bool:
    """
    Writes both frames of a response.

    A worker that exits in the middle of an exchange closes the read end,
    which surfaces here as a broken pipe; that exchange is discarded. Any
    other I/O error is logged and the exchange is discarded as well.

    :return: True if the response was delivered to the channel.
    """
    try:
        write_all(fd, encode_response(code, position_map))
        return True
    except BrokenPipeError:
        log.debug("Worker closed the channel mid-exchange. Response discarded.")
    except OSError as e:
        log.error(f"Failed to write to the source channel: {e}")
    return False
