"""
This module contains the default configuration settings for hotrun.
It defines timing, watching, transformation and worker process settings.
Every value can be overridden by a `HOTRUN_*` environment variable (or a
`.env` file), by a `hotrun.json` overrides file, or on the command line.
"""

import os
import sys
import pathlib
import tempfile
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


def _env_list(name: str, default: str = "") -> list:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


#* --- Core Paths ---
BASE_DIR = pathlib.Path.cwd()
OVERRIDES_JSON_PATH = BASE_DIR / "hotrun.json"
PIPE_DIR = pathlib.Path(os.getenv("HOTRUN_PIPE_DIR", tempfile.gettempdir()))

#* --- Restart & Supervision Settings ---
DEBOUNCE_SECONDS = float(os.getenv("HOTRUN_DEBOUNCE_SECONDS", "0.1"))
RESTART_TIMEOUT = float(os.getenv("HOTRUN_RESTART_TIMEOUT", "2.0"))  # seconds before force-killing
FORCED_KILL_TIMEOUT = 5.0      # seconds to wait for a killed worker to be reaped
WORKER_CONNECT_TIMEOUT = 10.0  # seconds for a fresh worker to open its channel
SUPERVISOR_POLL_INTERVAL = 1.0
KILL_SIGNAL = os.getenv("HOTRUN_KILL_SIGNAL", "SIGTERM")
RESTART_COMMAND = "rs"
RESTART_MESSAGE = os.getenv("HOTRUN_RESTART_MESSAGE", ">>> RESTARTING <<<")

#* --- Watcher Settings ---
WATCH_PATHS = _env_list("HOTRUN_WATCH")
EXCLUDE_PATTERNS = _env_list("HOTRUN_EXCLUDE")
USE_POLLING = _env_flag("HOTRUN_USE_POLLING", "False")
AUTOWATCH = _env_flag("HOTRUN_AUTOWATCH", "True")

#* --- Transformation Settings ---
TRANSFORMER = os.getenv("HOTRUN_TRANSFORMER", "hotrun.compiler.transform:passthrough")
TRANSFORM_OPTIONS = {}
EXTENSIONS = _env_list("HOTRUN_EXTENSIONS", ".py")
ONLY_GLOBS = _env_list("HOTRUN_ONLY")
IGNORE_GLOBS = _env_list("HOTRUN_IGNORE")

#* --- Worker Process Settings ---
PYTHON_EXECUTABLE = os.getenv("HOTRUN_PYTHON_EXECUTABLE", sys.executable)
WORKER_PYTHON_FLAGS = _env_list("HOTRUN_PYTHON_FLAGS")
HANDLE_UNCAUGHT_EXCEPTIONS = _env_flag("HOTRUN_HANDLE_UNCAUGHT_EXCEPTIONS", "True")
CAPTURE_WORKER_OUTPUT = _env_flag("HOTRUN_CAPTURE_OUTPUT", "False")

#* --- Console Settings ---
CONSOLE_ENABLED = _env_flag("HOTRUN_CONSOLE", "True")
VERBOSE_LOGGING = _env_flag("HOTRUN_VERBOSE", "False")

#* --- MODIFIABLE SETTINGS (Changeable through hotrun.json) ---
MODIFIABLE_SETTINGS = {
    # Restart behaviour
    "DEBOUNCE_SECONDS", "RESTART_TIMEOUT", "KILL_SIGNAL",
    "RESTART_COMMAND", "RESTART_MESSAGE",
    # Watcher
    "WATCH_PATHS", "EXCLUDE_PATTERNS", "USE_POLLING", "AUTOWATCH",
    # Transformation
    "TRANSFORMER", "TRANSFORM_OPTIONS", "EXTENSIONS", "ONLY_GLOBS", "IGNORE_GLOBS",
    # Worker
    "PYTHON_EXECUTABLE", "WORKER_PYTHON_FLAGS", "HANDLE_UNCAUGHT_EXCEPTIONS",
    "CAPTURE_WORKER_OUTPUT", "PIPE_DIR",
}
