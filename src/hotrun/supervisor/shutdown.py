import time
import signal
import psutil
import logging
import subprocess
from typing import List, Optional, Union

log = logging.getLogger(__name__)


def resolve_signal(value: Union[str, int]) -> signal.Signals:
    """
    Converts a configured signal name ("SIGTERM", "TERM") or number to a signal.

    :raises ValueError: If the signal is unknown.
    """
    if isinstance(value, int) or str(value).isdigit():
        return signal.Signals(int(value))
    name = str(value).upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError:
        raise ValueError(f"Unknown signal '{value}'") from None


def identify_processes_to_stop(pid: int) -> List[psutil.Process]:
    """
    Identifies the worker and every process it spawned.

    :param pid: The worker's process id.
    :return: The worker first, followed by its descendants.
    """
    try:
        worker = psutil.Process(pid)
        return [worker, *worker.children(recursive=True)]
    except psutil.NoSuchProcess:
        return []


def _terminate_processes(processes: List[psutil.Process], sig: signal.Signals) -> None:
    """Sends the graceful signal to every process."""
    for proc in processes:
        try:
            log.debug(f"Sending {sig.name} to PID {proc.pid}")
            proc.send_signal(sig)
        except psutil.NoSuchProcess:
            continue


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    for proc in processes:
        try:
            log.warning(f"Killing unresponsive process PID {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def terminate_worker(popen: subprocess.Popen, sig: signal.Signals, timeout: float, kill_timeout: float) -> bool:
    """
    Runs the graceful-then-forced shutdown sequence for a worker.

    The worker and its descendants receive `sig`. If the worker has not
    exited after `timeout` seconds it is killed, so the wait is always
    bounded. Descendants still alive once the worker is gone are killed too.

    :param popen: The worker process.
    :param sig: The graceful termination signal.
    :param timeout: Seconds to wait for a graceful exit.
    :param kill_timeout: Seconds to wait for a killed worker to be reaped.
    :return: True if the worker had to be force-killed.
    """
    if popen.poll() is not None:
        return False

    started = time.monotonic()
    processes = identify_processes_to_stop(popen.pid)
    worker: Optional[psutil.Process] = processes[0] if processes else None
    descendants = processes[1:]
    _terminate_processes(processes, sig)

    forced = False
    try:
        popen.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        log.warning(f"Worker (PID {popen.pid}) did not exit within {timeout} seconds. Forcing shutdown...")
        if worker is not None:
            _forceful_kill([worker])
        forced = True
        try:
            popen.wait(timeout=kill_timeout)
        except subprocess.TimeoutExpired:
            log.error(f"Worker (PID {popen.pid}) survived SIGKILL for {kill_timeout} seconds.")

    if descendants:
        remaining = max(0.0, timeout - (time.monotonic() - started))
        _, alive = psutil.wait_procs(descendants, timeout=remaining)
        _forceful_kill(alive)

    log.debug(f"Worker (PID {popen.pid}) stopped with code {popen.returncode}.")
    return forced
