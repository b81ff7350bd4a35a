import logging
import sys

# Loggers under this prefix carry raw output lines captured from the worker.
PROC_LOGGER_PREFIX = "proc."


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw worker output."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        # Worker output is already a complete line; print it untouched.
        if record.name.startswith(PROC_LOGGER_PREFIX):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Configures the root logger for the coordinator.
    Clears any previously configured handlers to prevent duplication and
    installs a single console handler.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # watchdog is chatty at DEBUG level.
    logging.getLogger("watchdog").setLevel(max(console_level, logging.INFO))
