import sys
import logging
import threading
from typing import List

from hotrun.console.handler import display_status, print_help, toggle_verbose_logging

log = logging.getLogger(__name__)


def execute_command(supervisor, command: str, args: List[str]) -> None:
    """
    Executes a single command typed by the operator.

    :param supervisor: The running Supervisor.
    :param command: The main command string (e.g., 'rs', 'status').
    :param args: A list of arguments for the command.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    settings = supervisor.settings
    command_map = {
        settings.RESTART_COMMAND: supervisor.request_restart,
        "status": lambda: display_status(supervisor),
        "verbose": lambda: toggle_verbose_logging(settings),
        "help": lambda: print_help(settings),
    }

    if command in command_map:
        command_map[command]()
    else:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")


def _console_loop(supervisor, stream) -> None:
    for line in iter(stream.readline, ""):
        command_line = line.strip().split()
        if not command_line:
            continue
        command, args = command_line[0], command_line[1:]
        try:
            execute_command(supervisor, command, args)
        except Exception as e:
            log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)
    log.debug("Console input closed.")


def start_console(supervisor, stream=None) -> threading.Thread:
    """
    Starts a daemon thread that reads operator commands line by line.
    The thread ends quietly when the input reaches end-of-file.

    :param supervisor: The Supervisor the commands act on.
    :param stream: The text stream to read from. Defaults to stdin.
    """
    thread = threading.Thread(
        target=_console_loop,
        args=(supervisor, stream if stream is not None else sys.stdin),
        daemon=True,
        name="ConsoleThread",
    )
    thread.start()
    return thread
