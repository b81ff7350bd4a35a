import os
import time
import errno
import logging
import secrets
import threading
from pathlib import Path
from typing import Callable, Optional

from hotrun.bridge import protocol
from hotrun.errors import ChannelAllocationError, WorkerSpawnError

log = logging.getLogger(__name__)

OPEN_RETRY_INTERVAL = 0.01


class BridgeChannel:
    """
    The coordinator's end of one worker's Source Bridge: a named pipe.

    A fresh channel is allocated for every worker. The coordinator holds the
    write end; the worker opens the read end and blocks on it for every
    module it loads.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.fd: Optional[int] = None
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def allocate(cls, directory) -> "BridgeChannel":
        """
        Creates a uniquely named FIFO in `directory`.

        :param directory: Where to create the pipe (usually the temp dir).
        :return: The new, not yet opened, channel.
        :raises ChannelAllocationError: If the named pipe cannot be created.
        """
        path = os.path.join(str(directory), f"hotrun-{os.getpid()}-{secrets.token_hex(6)}.fifo")
        if not hasattr(os, "mkfifo"):
            raise ChannelAllocationError("Named pipes are not available on this platform.")
        try:
            os.mkfifo(path, 0o600)
        except OSError as e:
            raise ChannelAllocationError(f"Unable to create named pipe '{path}': {e}") from e
        log.debug(f"Allocated source channel {path}")
        return cls(path)

    def open_writer(self, is_alive: Callable[[], bool], timeout: float) -> None:
        """
        Opens the write end once the worker has opened the read end.

        The open is attempted non-blockingly and retried, so a worker that
        dies or hangs before reaching its channel cannot block the coordinator.

        :param is_alive: Returns False once the worker process has exited.
        :param timeout: Seconds to wait for the worker to open its end.
        :raises WorkerSpawnError: If the worker exits or the timeout elapses first.
        :raises ChannelAllocationError: If the pipe cannot be opened for another reason.
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
                break
            except OSError as e:
                if e.errno != errno.ENXIO:
                    raise ChannelAllocationError(f"Unable to open named pipe '{self.path}': {e}") from e
            if not is_alive():
                raise WorkerSpawnError("Worker exited before opening its source channel.")
            if time.monotonic() > deadline:
                raise WorkerSpawnError(f"Worker did not open its source channel within {timeout} seconds.")
            time.sleep(OPEN_RETRY_INTERVAL)

        os.set_blocking(fd, True)
        with self._lock:
            if self._closed:
                os.close(fd)
                return
            self.fd = fd

    def write_response(self, code: Optional[bytes], position_map: Optional[bytes]) -> bool:
        """Writes one response; responses for a closed channel are discarded."""
        with self._lock:
            if self._closed or self.fd is None:
                log.debug("Source channel already closed. Response discarded.")
                return False
            return protocol.write_response(self.fd, code, position_map)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Closes the write end and removes the named pipe. Safe to call twice."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            fd, self.fd = self.fd, None
        if fd is not None:
            try:
                os.close(fd)
            except OSError as e:
                log.debug(f"Closing source channel fd failed: {e}")
        Path(self.path).unlink(missing_ok=True)
        log.debug(f"Released source channel {self.path}")
