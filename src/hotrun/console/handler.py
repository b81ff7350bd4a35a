import logging

import psutil

log = logging.getLogger(__name__)


def display_status(supervisor) -> None:
    """Displays the supervisor's state and the worker's resource usage."""
    status = supervisor.status()

    print("\n--- Supervisor Status ---")
    print(f"  State    : {status['state'].upper()}")
    print(f"  Starts   : {status['starts']}")
    print(f"  Watched  : {status['watched']} path(s)")
    print(f"  Cached   : {status['cached']} compiled module(s)")

    pid = status["pid"]
    if pid is None:
        print("  Worker   : not running")
    else:
        try:
            p = psutil.Process(pid)
            cpu = p.cpu_percent(interval=0.1)
            mem = p.memory_info().rss
            print(f"  Worker   : PID {pid:<8} | Status: {p.status().upper()} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
        except psutil.NoSuchProcess:
            print(f"  Worker   : PID {pid:<8} | Status: EXITED")
        except psutil.AccessDenied:
            print(f"  Worker   : PID {pid:<8} | Status: RUNNING (Access Denied)")

    if status["parked"]:
        print("  Parked   : the worker is waiting on a module that failed to compile")

    if status["errors"]:
        print("\n  Unresolved compilation errors (restarts are blocked):")
        for path in status["errors"]:
            print(f"    - {path}")
    print("-" * 25 + "\n")


def toggle_verbose_logging(settings) -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    settings.VERBOSE_LOGGING = not settings.VERBOSE_LOGGING
    new_level = logging.DEBUG if settings.VERBOSE_LOGGING else logging.INFO

    # Reconfigure the console handler's level directly
    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if settings.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")


def print_help(settings) -> None:
    """Prints the help text for the operator console."""
    print("\nAvailable commands:")
    print(f"  {settings.RESTART_COMMAND:<10} - Restart the worker (blocked while compilation errors remain).")
    print("  status     - Show the supervisor state, the worker and any compilation errors.")
    print("  verbose    - Toggle detailed DEBUG log output in the console.")
    print("  help       - Show this help message.")
    print()
