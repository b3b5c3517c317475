"""
Logging configuration for notetaker.

Terminal output belongs to the notes themselves, so the CLI starts quiet.
--verbose (or NOTETAKER_VERBOSE=1) sends debug records to stderr. Every
Notebook also writes an operations log inside its store directory.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "notetaker-ops.log"

# Several `note` processes may share one store; the pid tells them apart
OPS_LOG_FORMAT = "%(asctime)s [%(process)d] %(levelname)s %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_PACKAGE_LOGGER = "notetaker"


def configure_quiet_mode(quiet: bool = True):
    """
    Quiet terminal defaults for the CLI.

    Args:
        quiet: If True, hide Python warnings and raise the package logger
            to WARNING. If False, restore default warning display.
    """
    if not quiet:
        warnings.filterwarnings("default")
        return
    warnings.filterwarnings("ignore")
    logging.getLogger(_PACKAGE_LOGGER).setLevel(logging.WARNING)


def _has_stderr_handler(log: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in log.handlers
    )


def enable_debug_mode():
    """Send the package's debug records to stderr."""
    warnings.filterwarnings("default")

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG)
    if _has_stderr_handler(package_logger):
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(DEBUG_FORMAT, datefmt="%H:%M:%S"))
    package_logger.addHandler(handler)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """Attach the store's operations log to the package logger.

    Records INFO and above to {store_path}/notetaker-ops.log, rotating at
    1MB with 3 backups, whether or not --verbose is set. The caller owns
    the returned handler and removes it when the store is closed.
    """
    log_path = Path(store_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(OPS_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.addHandler(handler)
    # Quiet mode raises the level to WARNING; the ops log still needs INFO
    if not package_logger.isEnabledFor(logging.INFO):
        package_logger.setLevel(logging.INFO)

    return handler
