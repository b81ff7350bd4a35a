import subprocess
from dataclasses import dataclass
from typing import Optional

from hotrun.bridge.channel import BridgeChannel
from hotrun.bridge.server import SourceServer

SERVER_JOIN_TIMEOUT = 1.0


@dataclass
class WorkerHandle:
    """Everything the supervisor owns for one worker process."""
    generation: int
    popen: subprocess.Popen
    channel: BridgeChannel
    connection: object
    server: Optional[SourceServer] = None

    @property
    def pid(self) -> int:
        return self.popen.pid

    def is_alive(self) -> bool:
        return self.popen.poll() is None

    def release(self) -> None:
        """Releases the channel and connection of a worker that has exited."""
        if self.server is not None and self.server.is_alive():
            self.server.join(timeout=SERVER_JOIN_TIMEOUT)
        self.connection.close()
        self.channel.close()
