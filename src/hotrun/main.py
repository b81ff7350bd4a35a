import sys
import logging
import argparse
from typing import Any, Dict, List, Optional, Sequence

import setproctitle

from hotrun import __version__
from hotrun.config import MergedSettings
from hotrun.console import start_console
from hotrun.errors import TransformerLoadError
from hotrun.log import setup_logging
from hotrun.supervisor import Supervisor

log = logging.getLogger("hotrun")


def _comma_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotrun",
        description="Run a Python program, transforming its modules on load and restarting it when they change.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-w", "--watch", action="append", metavar="PATH",
                        help="Watch this file or directory for changes (repeatable).")
    parser.add_argument("-x", "--exclude", action="append", metavar="PATTERN",
                        help="Exclude matching paths from watching (repeatable).")
    parser.add_argument("-o", "--only", type=_comma_list, metavar="GLOBS",
                        help="Only transform files matching these comma-separated globs.")
    parser.add_argument("-i", "--ignore", type=_comma_list, metavar="GLOBS",
                        help="Never transform files matching these comma-separated globs.")
    parser.add_argument("-e", "--extensions", type=_comma_list, metavar="EXTS",
                        help="Comma-separated file extensions to transform (default: .py).")
    parser.add_argument("--transformer", metavar="MODULE:FUNC",
                        help="The transformer callable to compile sources with.")
    parser.add_argument("-L", "--use-polling", action="store_true", default=None,
                        help="Poll the file system instead of using native notifications.")
    parser.add_argument("-D", "--disable-autowatch", action="store_true",
                        help="Do not watch files merely because the program loaded them.")
    parser.add_argument("-H", "--disable-ex-handler", action="store_true",
                        help="Do not translate line numbers in uncaught exception tracebacks.")
    parser.add_argument("-m", "--message", metavar="TEXT",
                        help="The message logged when the program restarts.")
    parser.add_argument("-t", "--restart-timeout", type=float, metavar="SECONDS",
                        help="Seconds to wait for a graceful exit before killing the program.")
    parser.add_argument("-X", "--python-flag", action="append", metavar="FLAG",
                        help="Pass a flag to the worker's Python interpreter (repeatable).")
    parser.add_argument("--capture-output", action="store_true", default=None,
                        help="Route the program's output through the coordinator's log.")
    parser.add_argument("--no-console", action="store_true",
                        help="Do not read operator commands from stdin.")
    parser.add_argument("--config", metavar="FILE",
                        help="Path to a JSON overrides file (default: ./hotrun.json).")
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging.")
    parser.add_argument("script", help="The Python program to run.")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the program.")
    return parser


def cli_overrides(ns: argparse.Namespace) -> Dict[str, Any]:
    """
    Maps parsed command-line options to setting overrides.
    Options left at their defaults produce no override.
    """
    overrides: Dict[str, Any] = {}
    mapping = {
        "WATCH_PATHS": ns.watch,
        "EXCLUDE_PATTERNS": ns.exclude,
        "ONLY_GLOBS": ns.only,
        "IGNORE_GLOBS": ns.ignore,
        "EXTENSIONS": ns.extensions,
        "TRANSFORMER": ns.transformer,
        "USE_POLLING": ns.use_polling,
        "RESTART_MESSAGE": ns.message,
        "RESTART_TIMEOUT": ns.restart_timeout,
        "WORKER_PYTHON_FLAGS": ns.python_flag,
        "CAPTURE_WORKER_OUTPUT": ns.capture_output,
    }
    for key, value in mapping.items():
        if value is not None:
            overrides[key] = value

    if ns.disable_autowatch:
        overrides["AUTOWATCH"] = False
    if ns.disable_ex_handler:
        overrides["HANDLE_UNCAUGHT_EXCEPTIONS"] = False
    if ns.no_console:
        overrides["CONSOLE_ENABLED"] = False
    if ns.verbose:
        overrides["VERBOSE_LOGGING"] = True
    if overrides.get("EXTENSIONS"):
        overrides["EXTENSIONS"] = [ext if ext.startswith(".") else f".{ext}" for ext in overrides["EXTENSIONS"]]
    return overrides


def main(argv: Optional[Sequence[str]] = None) -> int:
    """The main entry point for the coordinator."""
    ns = build_parser().parse_args(argv)
    settings = MergedSettings(overrides_path=ns.config, cli_overrides=cli_overrides(ns))

    setup_logging(logging.DEBUG if settings.VERBOSE_LOGGING else logging.INFO)
    setproctitle.setproctitle("hotrun - Coordinator")

    try:
        supervisor = Supervisor(settings, ns.script, ns.args)
    except (TransformerLoadError, ValueError) as e:
        log.critical(str(e))
        return 1

    if settings.CONSOLE_ENABLED:
        start_console(supervisor)
        log.info(f"Type '{settings.RESTART_COMMAND}' to restart, 'help' for more commands.")
    return supervisor.run()


if __name__ == "__main__":
    sys.exit(main())
