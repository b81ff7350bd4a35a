import os
import logging
import threading
import subprocess
from typing import Callable, List, Optional

from hotrun.errors import WorkerSpawnError

log = logging.getLogger(__name__)

WORKER_ENTRY_MODULE = "hotrun.script_entry.worker"


#* --- Process Creation ---
def get_worker_args(settings, connection_fd: int) -> List[str]:
    """
    Returns the command line that starts a worker process.

    :param settings: The MergedSettings instance.
    :param connection_fd: The control connection fd the worker inherits.
    :return list: The argument vector for subprocess.Popen.
    """
    return [
        str(settings.PYTHON_EXECUTABLE),
        *settings.WORKER_PYTHON_FLAGS,
        "-m", WORKER_ENTRY_MODULE,
        str(connection_fd),
    ]


def spawn_worker(settings, connection_fd: int) -> subprocess.Popen:
    """
    Launches a worker process that inherits the control connection.

    The worker runs in its own session so a terminal interrupt reaches only
    the coordinator, which then shuts the worker down itself.

    :param settings: The MergedSettings instance.
    :param connection_fd: The control connection fd to pass to the worker.
    :return subprocess.Popen: The running worker.
    :raises WorkerSpawnError: If the process cannot be started.
    """
    args = get_worker_args(settings, connection_fd)
    capture = settings.CAPTURE_WORKER_OUTPUT
    # Piped output is block-buffered unless told otherwise.
    env = {**os.environ, "PYTHONUNBUFFERED": "1"} if capture else None
    try:
        p = subprocess.Popen(
            args,
            pass_fds=(connection_fd,),
            stdin=subprocess.DEVNULL if settings.CONSOLE_ENABLED else None,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else None,
            cwd=str(settings.BASE_DIR),
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        raise WorkerSpawnError(f"Failed to start worker process {args}: {e}") from e

    if capture:
        log_process_output(p, "worker")
    log.debug(f"Worker process spawned with PID {p.pid}: {' '.join(args)}")
    return p


#* --- Output & Exit Monitoring ---
def _read_pipe(pipe, process_name: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{process_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if line:
                proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str) -> None:
    """Starts background threads to consume and log a process's stdout/stderr."""
    if process.stdout:
        threading.Thread(target=_read_pipe, args=(process.stdout, name, logging.INFO), daemon=True).start()
    if process.stderr:
        threading.Thread(target=_read_pipe, args=(process.stderr, name, logging.ERROR), daemon=True).start()


def watch_for_exit(process: subprocess.Popen, on_exit: Callable[[Optional[int]], None]) -> threading.Thread:
    """
    Starts a daemon thread that waits for the process and reports its exit code.

    :param process: The process to wait for.
    :param on_exit: Called with the return code once the process has exited.
    """
    def _wait() -> None:
        on_exit(process.wait())

    thread = threading.Thread(target=_wait, daemon=True, name=f"WorkerExitWatcher-{process.pid}")
    thread.start()
    return thread

