"""
Logging setup for termbook.

The CLI starts quiet. Debug output goes to stderr on request, and each
open Glossary can append its write operations to a rotating log file in
the store directory.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "termbook-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# Third-party loggers that are chatty at INFO
_LIBRARY_LOGGERS = ("janome", "rapidfuzz")

_DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_quiet_mode(quiet: bool = True):
    """Silence warnings and library loggers below ERROR."""
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send DEBUG records from termbook and its libraries to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(_DEBUG_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)

    for name in ("termbook",) + _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Append INFO records of the "termbook" logger to the store's ops log.

    Returns the handler; pass it to remove_ops_log() when the store closes.
    """
    path = Path(store_path) / OPS_LOG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(path),
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    logger = logging.getLogger("termbook")
    logger.addHandler(handler)
    # INFO must pass even when the CLI runs quiet
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    if handler is None:
        return
    logging.getLogger("termbook").removeHandler(handler)
    handler.close()
