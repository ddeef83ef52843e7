from __future__ import annotations

import logging
from pathlib import Path


LOGGER_NAME = "suasupload"
LOG_FILENAME = "suasupload.log"

_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def _with_format(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    return handler


def setup_logging(*, log_dir: Path | None = None, verbose: bool = True) -> logging.Logger:
    """
    Configure the ``suasupload`` logger that every module logs through.

    Args:
        log_dir: Also keep a suasupload.log here (DEBUG and up)
        verbose: Console shows DEBUG when True, INFO and up otherwise
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    logger.addHandler(_with_format(logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO))
    if log_dir is not None:
        attach_session_logfile(logger, log_dir)
    return logger


def attach_session_logfile(logger: logging.Logger, log_dir: Path) -> Path:
    """Add a file handler for ``log_dir/suasupload.log`` once; returns the log path."""
    log_dir.mkdir(parents=True, exist_ok=True)
    logfile = (log_dir / LOG_FILENAME).resolve()
    already = any(
        isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == logfile for h in logger.handlers
    )
    if not already:
        logger.addHandler(_with_format(logging.FileHandler(logfile, encoding="utf-8"), logging.DEBUG))
    return logfile
