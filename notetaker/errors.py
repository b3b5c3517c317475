"""
Crash log for the note CLI.

Unexpected exceptions get a one-line message on the terminal and a full
traceback in notetaker-errors.log inside the store directory.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import get_default_store_path

ERROR_LOG_FILENAME = "notetaker-errors.log"


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """The store's crash log; the default store when none is active."""
    directory = Path(store_path) if store_path is not None else get_default_store_path()
    return directory / ERROR_LOG_FILENAME


def _format_entry(exc: BaseException, context: str) -> str:
    header = f"[{datetime.now(timezone.utc).isoformat()}] pid {os.getpid()}"
    if context:
        header += f" {context}"
    body = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"\n{'=' * 60}\n{header}\n{body}"


def log_exception(
    exc: BaseException,
    context: str = "",
    store_path: Optional[Path] = None,
) -> Path:
    """
    Append the exception's traceback to the crash log.

    The entry goes out in a single O_APPEND write so entries from
    concurrent processes do not interleave. Failure to write is ignored.

    Args:
        exc: The exception that occurred
        context: Where it happened (e.g., "note CLI")
        store_path: Store directory holding the log (default store if None)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    entry = _format_entry(exc, context).encode("utf-8")
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        try:
            os.write(fd, entry)
        finally:
            os.close(fd)
    except OSError:
        pass  # A crash log that cannot be written must not mask the crash
    return log_path
