"""
Error types and error logging for termbook.

The CLI prints one line per failure; the traceback goes to a log file
in the store directory.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class TermbookError(Exception):
    """Base class for all termbook errors."""


class ValidationError(TermbookError, ValueError):
    """A required field is empty. Raised before any transaction opens."""


class StorageError(TermbookError):
    """I/O or database failure. The surrounding transaction was rolled back."""


class NotFoundError(StorageError):
    """The operation targets a term id that does not exist."""

    def __init__(self, term_id: int):
        super().__init__(f"Term not found: {term_id}")
        self.term_id = term_id


class ConstraintError(StorageError):
    """Uniqueness or foreign-key violation surfaced by the database."""


class IndexBuildError(TermbookError):
    """Normalization or tokenization failed while building the search index."""


class TokenizerNotReadyError(IndexBuildError):
    """The reading provider has not finished loading its dictionary."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting TERMBOOK_STORE_PATH."""
    store = os.environ.get("TERMBOOK_STORE_PATH")
    if store:
        return Path(store) / "termbook-errors.log"
    return Path.home() / ".termbook" / "termbook-errors.log"


def log_exception(exc: Exception, context: str = "", log_path: Optional[Path] = None) -> Path:
    """
    Append ``exc`` and its traceback to the error log.

    Args:
        exc: The exception to record
        context: Where it happened, e.g. the CLI command
        log_path: Override for the log file location

    Returns:
        Path to the error log file
    """
    log_path = log_path or _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # unwritable log location; the caller still reports the error
    return log_path
