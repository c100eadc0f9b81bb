import logging
import sys

from runstack.local.config import effective_settings as config

PROC_LOGGER_PREFIX = "proc."


class MainFormatter(logging.Formatter):
    """Prints supervised-process output raw and formats everything else."""

    def __init__(self) -> None:
        super().__init__('%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s')

    def format(self, record):
        # Output lines of a supervised process are already complete lines.
        if record.name.startswith(PROC_LOGGER_PREFIX):
            return f"[{record.name[len(PROC_LOGGER_PREFIX):]}] {record.getMessage()}"
        return super().format(record)


def get_process_logger(token: str) -> logging.Logger:
    """Returns the logger that carries output of the process launched under `token`."""
    return logging.getLogger(f"{PROC_LOGGER_PREFIX}{token}")


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Replaces the root logger's handlers with a stdout handler at `console_level`
    and a DEBUG file handler at LOG_FILE_PATH.

    A log file that cannot be opened is reported and skipped.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers do the filtering
    root_logger.handlers.clear()
    formatter = MainFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(console_level)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    log_file = config.LOG_FILE_PATH
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        root_logger.error(f"Could not open log file '{log_file}', logging to stdout only: {e}")
        return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)
