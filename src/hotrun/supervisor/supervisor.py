import os
import queue
import signal
import logging
import threading
import multiprocessing
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from hotrun.bridge.channel import BridgeChannel
from hotrun.bridge.messages import StartCommand
from hotrun.bridge.server import SourceServer
from hotrun.compiler.cache import CompilationCache
from hotrun.compiler.gateway import TransformGateway
from hotrun.errors import ChannelAllocationError, HotrunError, WorkerSpawnError
from hotrun.supervisor import process_utils, shutdown
from hotrun.events import (
    ChangeEvent, Debouncer, RestartRequest, ShutdownRequest, WatcherReady, WorkerExited,
)
from hotrun.supervisor.worker_handle import WorkerHandle
from hotrun.watcher import Watcher

log = logging.getLogger(__name__)

NOTICE_PATH_LIMIT = 3


class SupervisorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    BLOCKED = "blocked"


class Supervisor:
    """
    Owns the worker's lifecycle and reacts to file changes.

    All state transitions happen on the thread running `run()`, which
    consumes a single event queue fed by the watcher, the restart debouncer,
    the worker exit watchers and the console. Compilation runs on each
    worker's source server thread, so a slow transformer never delays the
    reaction to a worker exiting or a file changing.
    """

    def __init__(
        self,
        settings,
        script: str,
        script_args: Sequence[str] = (),
        gateway: Optional[TransformGateway] = None,
        watcher: Optional[Watcher] = None,
    ) -> None:
        self.settings = settings
        self.argv: List[str] = [os.path.abspath(script), *script_args]

        self.cache = gateway.cache if gateway is not None else CompilationCache()
        self.gateway = gateway if gateway is not None else TransformGateway.from_settings(settings, self.cache)
        self.watcher = watcher if watcher is not None else Watcher(settings, self.post)
        self.debouncer = Debouncer(settings.DEBOUNCE_SECONDS, self._on_debounced)
        self.kill_signal = shutdown.resolve_signal(settings.KILL_SIGNAL)

        self.events: "queue.Queue[Any]" = queue.Queue()
        self.state = SupervisorState.IDLE
        self.worker: Optional[WorkerHandle] = None
        self.watcher_ready = False
        self.starts = 0
        self._generation = 0
        self._running = False

    #* --- Inputs From Other Threads ---
    def post(self, event: Any) -> None:
        self.events.put(event)

    def request_restart(self) -> None:
        """Operator-issued restart. Debounced and blocked like any other."""
        self.debouncer.trigger(manual=True)

    def request_shutdown(self, reason: str = "requested") -> None:
        self.post(ShutdownRequest(reason))

    def _on_debounced(self, paths: FrozenSet[str], manual: bool) -> None:
        self.post(RestartRequest(paths, manual))

    def on_worker_load(self, path: str) -> None:
        """Called by the source server for every module the worker loads."""
        if self.settings.AUTOWATCH:
            self.watcher.add(path)

    #* --- Event Handling ---
    def handle_event(self, event: Any) -> None:
        if isinstance(event, ChangeEvent):
            self._handle_change(event)
        elif isinstance(event, RestartRequest):
            self._handle_restart(event)
        elif isinstance(event, WorkerExited):
            self._handle_worker_exit(event)
        elif isinstance(event, WatcherReady):
            self.watcher_ready = True
            log.info("Watching for changes.")
            if self.worker is None:
                self._start_if_clear()
        elif isinstance(event, ShutdownRequest):
            log.info(f"Shutdown requested ({event.reason}).")
            self._running = False
        else:
            log.warning(f"Ignoring unknown event: {event!r}")

    def _handle_change(self, event: ChangeEvent) -> None:
        log.debug(f"{event.kind.value}: {event.path}")
        self.gateway.clear(event.path)
        if self.watcher_ready:
            self.debouncer.trigger(event.path)

    def _handle_restart(self, request: RestartRequest) -> None:
        if not self.watcher_ready:
            return
        if self.state is SupervisorState.BLOCKED and self.gateway.has_errors():
            log.debug("Restart withheld: compilation errors are still unresolved.")
            return

        if self.worker is not None:
            self._stop_worker()
        if not self.gateway.has_errors():
            log.info(self._restart_notice(request))
        self._start_if_clear()

    def _handle_worker_exit(self, event: WorkerExited) -> None:
        if self.worker is None or self.worker.generation != event.generation:
            return
        handle, self.worker = self.worker, None
        handle.release()
        self.state = SupervisorState.IDLE
        log.info(f"Worker exited with code {event.returncode}. Waiting for changes before restarting.")

    def _restart_notice(self, request: RestartRequest) -> str:
        message = self.settings.RESTART_MESSAGE
        if request.manual and not request.paths:
            return f"{message} (manual restart)"
        names = sorted(self._display_path(p) for p in request.paths)
        if not names:
            return message
        shown = ", ".join(names[:NOTICE_PATH_LIMIT])
        if len(names) > NOTICE_PATH_LIMIT:
            shown += f" and {len(names) - NOTICE_PATH_LIMIT} more"
        return f"{message} ({shown})"

    def _display_path(self, path: str) -> str:
        try:
            return os.path.relpath(path, self.settings.BASE_DIR)
        except ValueError:
            return path

    #* --- Worker Lifecycle ---
    def _start_if_clear(self) -> None:
        if self.gateway.has_errors():
            if self.state is not SupervisorState.BLOCKED:
                log.warning(
                    f"Compilation errors in {', '.join(self._display_path(p) for p in self.gateway.failed_paths())}. "
                    "Not restarting until they are fixed."
                )
            self.state = SupervisorState.BLOCKED
            return
        self._start_worker()

    def _start_worker(self) -> None:
        self.state = SupervisorState.STARTING
        self._generation += 1
        self.worker = self._launch_worker(self._generation)
        self.starts += 1
        self.state = SupervisorState.RUNNING
        log.info(f"Started {self._display_path(self.argv[0])} (PID {self.worker.pid}).")

    def _stop_worker(self) -> None:
        # The handle stays reachable until teardown finishes, so an interrupt
        # mid-teardown still leaves shutdown() something to stop.
        self.state = SupervisorState.STOPPING
        self._teardown_worker(self.worker)
        self.worker = None
        self.state = SupervisorState.IDLE

    def _launch_worker(self, generation: int) -> WorkerHandle:
        """
        Allocates a channel, spawns a worker and connects it to a source server.

        :raises ChannelAllocationError: If the channel cannot be created.
        :raises WorkerSpawnError: If the worker cannot be started or never connects.
        """
        channel = BridgeChannel.allocate(self.settings.PIPE_DIR)
        parent_conn, child_conn = multiprocessing.Pipe()
        try:
            popen = process_utils.spawn_worker(self.settings, child_conn.fileno())
            # Published before the handshake so shutdown() can reach a worker
            # whose launch is interrupted.
            handle = self.worker = WorkerHandle(generation, popen, channel, parent_conn)
        except BaseException:
            parent_conn.close()
            channel.close()
            raise
        finally:
            child_conn.close()

        try:
            parent_conn.send(StartCommand(
                channel=channel.path,
                argv=list(self.argv),
                handle_uncaught_exceptions=self.settings.HANDLE_UNCAUGHT_EXCEPTIONS,
                extensions=tuple(self.settings.EXTENSIONS),
            ))
            channel.open_writer(handle.is_alive, self.settings.WORKER_CONNECT_TIMEOUT)
        except (OSError, HotrunError) as e:
            self._teardown_worker(handle)
            self.worker = None
            if isinstance(e, ChannelAllocationError):
                raise
            raise WorkerSpawnError(f"Worker failed to connect: {e}") from e

        handle.server = SourceServer(
            parent_conn, channel, self.gateway,
            on_load=self.on_worker_load,
            name=f"SourceServerThread-{generation}",
        )
        handle.server.start()
        process_utils.watch_for_exit(popen, lambda code: self.post(WorkerExited(generation, code)))
        return handle

    def _teardown_worker(self, handle: WorkerHandle) -> None:
        forced = shutdown.terminate_worker(
            handle.popen, self.kill_signal, self.settings.RESTART_TIMEOUT, self.settings.FORCED_KILL_TIMEOUT
        )
        if forced:
            log.warning(f"Worker (PID {handle.pid}) was force-killed after {self.settings.RESTART_TIMEOUT} seconds.")
        handle.release()

    #* --- Main Loop ---
    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGTERM, self._handle_termination_signal)

    def _handle_termination_signal(self, signum, frame) -> None:
        # The loop notices within one poll interval; the queue is not touched from a signal handler.
        log.info("SIGTERM received. Shutting down.")
        self._running = False

    def _check_watcher(self) -> None:
        if not self.watcher.is_alive():
            log.error("File watcher stopped unexpectedly. Restarting it.")
            self.watcher.restart()

    def run(self) -> int:
        """
        Runs the supervision loop until interrupted.

        :return: The process exit status: 0 after an interrupt or shutdown
            request, 1 if the channel or the worker could not be created.
        """
        self._running = True
        self._install_signal_handlers()
        exit_code = 0
        try:
            self.watcher.start()
            while self._running:
                try:
                    event = self.events.get(timeout=self.settings.SUPERVISOR_POLL_INTERVAL)
                except queue.Empty:
                    self._check_watcher()
                    continue
                self.handle_event(event)
        except KeyboardInterrupt:
            log.info("Interrupted. Shutting down.")
        except (ChannelAllocationError, WorkerSpawnError) as e:
            log.critical(str(e))
            exit_code = 1
        finally:
            self.shutdown()
        return exit_code

    def shutdown(self) -> None:
        """Stops the watcher and the live worker, releasing its channel."""
        self._running = False
        self.debouncer.cancel()
        self.watcher.stop()
        if self.worker is not None:
            self._stop_worker()
        log.info("Supervisor stopped.")

    def status(self) -> Dict[str, Any]:
        """A snapshot of the supervisor for the operator console."""
        worker = self.worker
        errors = self.gateway.failed_paths()
        return {
            "state": self.state.value,
            "pid": worker.pid if worker is not None else None,
            # A live worker stays blocked on the import that failed to compile.
            "parked": worker is not None and bool(errors),
            "starts": self.starts,
            "watched": self.watcher.watched_count(),
            "cached": len(self.cache),
            "errors": errors,
        }
