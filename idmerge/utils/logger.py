# idmerge/utils/logger.py
# ============================================================
# Structured Logging Setup
# ============================================================
# Every module logs through a Rich console handler so operators
# get colored, timestamped lines while a batch runs. When
# LOG_FILE is configured the same records are also appended to
# a plain-text file, which serves as the audit trail of a batch.
#
# Usage:
#   from idmerge.utils.logger import get_logger
#   logger = get_logger(__name__)
#   logger.info("Unit 'alice': merged document saved")
# ============================================================

import logging
from pathlib import Path

from rich.logging import RichHandler

from config.settings import settings

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"


def _file_handler(path: str, level: int) -> logging.Handler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Return the logger for `name`, attaching handlers on first use.

    Args:
        name: Logger name, typically __name__ of the calling module.

    Returns:
        A logging.Logger writing to the Rich console, and to
        settings.log_file when one is configured.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger.setLevel(level)

    console_handler = RichHandler(
        level=level,
        rich_tracebacks=True,
        show_time=True,
        show_path=False,
        markup=True,
    )
    # Rich adds time and level; the module name goes in the message
    console_handler.setFormatter(logging.Formatter("%(name)s — %(message)s"))
    logger.addHandler(console_handler)

    if settings.log_file:
        logger.addHandler(_file_handler(settings.log_file, level))

    logger.propagate = False
    return logger
