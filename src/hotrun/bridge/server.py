import logging
import threading
from typing import Callable, Optional

from hotrun.bridge.channel import BridgeChannel
from hotrun.bridge.messages import LoadRequest
from hotrun.compiler.gateway import Compiled, Ignored, TransformGateway

log = logging.getLogger(__name__)


class SourceServer(threading.Thread):
    """
    Answers one worker's load requests, in the order the worker sends them.

    Each request is reported to the autowatch callback, resolved through the
    gateway (cache first, then the transformer) and answered on the channel.
    A compile failure is deliberately left unanswered: the worker stays
    parked on that import until a fix triggers a restart that replaces it.
    """

    def __init__(
        self,
        connection,
        channel: BridgeChannel,
        gateway: TransformGateway,
        on_load: Optional[Callable[[str], None]] = None,
        name: str = "SourceServerThread",
    ) -> None:
        super().__init__(daemon=True, name=name)
        self.connection = connection
        self.channel = channel
        self.gateway = gateway
        self.on_load = on_load
        self.requests_served = 0

    def run(self) -> None:
        while True:
            try:
                message = self.connection.recv()
            except (EOFError, OSError):
                break

            if not isinstance(message, LoadRequest):
                log.warning(f"Ignoring unexpected message from worker: {message!r}")
                continue

            try:
                self.handle_load_request(message)
            except Exception as e:
                log.error(f"Failed to serve {message.path}: {e}", exc_info=True)
                self.channel.write_response(None, None)
        log.debug(f"{self.name} stopped after {self.requests_served} requests.")

    def handle_load_request(self, request: LoadRequest) -> None:
        if self.on_load:
            self.on_load(request.path)

        outcome = self.gateway.fetch(request.path)
        self.requests_served += 1
        if isinstance(outcome, Compiled):
            self.channel.write_response(outcome.artifact.code, outcome.artifact.position_map)
        elif isinstance(outcome, Ignored):
            self.channel.write_response(None, None)
        else:
            log.warning(f"Worker is waiting on {request.path}. Fix the error to restart.")
