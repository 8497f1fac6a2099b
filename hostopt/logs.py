"""
Run log setup.

Console output goes through rich's RichHandler; every record is also appended
to a plain-text log file as ``[timestamp] [LEVEL] message`` lines.
"""

import logging
import os
import tempfile

from rich.logging import RichHandler

from hostopt.ui import console

DEFAULT_LOG_FILE = "/var/log/hostopt.log"
LOGGER_NAME = "hostopt"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")


def _open_file_handler(log_file: str) -> logging.FileHandler:
    directory = os.path.dirname(log_file)
    if directory:
        os.makedirs(directory, mode=0o755, exist_ok=True)
    return logging.FileHandler(log_file, encoding="utf-8")


def setup_logging(
    log_file: str = DEFAULT_LOG_FILE, verbose: bool = False
) -> str:
    """
    Attach the console and file handlers to the ``hostopt`` logger.

    Calling it again replaces the handlers from the previous call. When the
    requested log file is not writable (e.g. a dry run as a regular user) the
    log goes to the temp directory instead.

    Returns the path of the log file actually in use.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        if getattr(handler, "_hostopt", False):
            logger.removeHandler(handler)
            handler.close()

    chosen = log_file
    try:
        file_handler = _open_file_handler(log_file)
    except OSError:
        chosen = os.path.join(tempfile.gettempdir(), os.path.basename(log_file))
        file_handler = _open_file_handler(chosen)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))

    console_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_path=False,
        log_time_format=f"[{LOG_DATE_FORMAT}]",
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in (file_handler, console_handler):
        setattr(handler, "_hostopt", True)
        logger.addHandler(handler)

    if chosen != log_file:
        logger.warning(f"Cannot write {log_file}; logging to {chosen} instead.")
    logger.debug(f"Logging initialized at {chosen}")
    return chosen

