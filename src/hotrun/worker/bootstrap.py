import os
import signal
import logging
from multiprocessing.connection import Connection

from hotrun.bridge.messages import StartCommand
from hotrun.worker import loader
from hotrun.worker.exceptions import PositionMapRegistry, install_exception_handler

log = logging.getLogger(__name__)


def handle_termination_signal(signum, frame):
    """Turns the coordinator's graceful signal into SystemExit so cleanup code runs."""
    raise SystemExit(128 + signum)


def run_worker(connection_fd: int) -> None:
    """
    The worker's startup sequence.

    Waits for the coordinator's start command, opens the Source Bridge
    channel, installs the import hook (and, if requested, the exception
    translator) and then runs the user's program.

    :param connection_fd: The inherited file descriptor of the control connection.
    """
    connection = Connection(connection_fd)
    command = connection.recv()
    if not isinstance(command, StartCommand):
        raise RuntimeError(f"Expected a start command from the coordinator, got {command!r}")

    # Blocks until the coordinator opens the write end.
    channel_fd = os.open(command.channel, os.O_RDONLY)
    client = loader.BridgeClient(connection, channel_fd)
    registry = PositionMapRegistry()

    signal.signal(signal.SIGTERM, handle_termination_signal)
    loader.install(client, registry, command.extensions)
    if command.handle_uncaught_exceptions:
        install_exception_handler(registry)

    log.debug(f"Worker {os.getpid()} running {command.argv[0]}")
    loader.run_main(client, registry, command.argv)
