# competitor_prices/config/logging_config.py

"""Per-run timestamped logging configuration for the price engine.

Each application launch creates a dedicated log file inside ``logs/``,
named with the launch timestamp (e.g. ``logs/run_20261018_153045.log``).
All ``competitor_prices.*`` loggers route through this file handler so
that every strategy, the cache and the orchestrator land in the same
per-run log.

Error records include full tracebacks, thread names, and module paths.
Extraction runs in worker threads, so the thread name is what ties a
log line back to a single competitor fetch.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from competitor_prices.config.settings import Settings

# Reusable format strings --------------------------------------------------

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "competitor_prices"


def setup_logging(logs_dir: Path | None = None) -> Path:
    """Initialise the root ``competitor_prices`` logger for the current run.

    Args:
        logs_dir: Directory for the run log. Defaults to
            :attr:`Settings.LOGS_DIR`.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this run.
    """
    directory: Path = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"run_{timestamp}.log"

    # --- Root project logger -----------------------------------------------
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    # Prevent duplicate handlers on repeated calls (e.g. tests)
    if root_logger.handlers:
        return log_file

    # --- File handler (DEBUG+) – captures everything -----------------------
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    # --- Console handler (WARNING+) – only important messages --------------
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info(
        "Logging initialised, log file: %s", log_file
    )

    return log_file
