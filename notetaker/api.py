"""
Core API for notetaker.

Notebook resolves the store directory and its configuration, opens the
configured backend and records every mutation in the operations log. The
CLI talks to a Notebook; a Notebook talks to a NoteStoreProtocol and never
to a concrete backend.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from .config import StoreConfig, get_default_store_path, load_or_create_config
from .protocol import NoteStoreProtocol
from .types import Note, Pattern, RenameResult, glob_to_regex

logger = logging.getLogger(__name__)


class Notebook:
    """
    A note store plus its configuration and operations log.

    Example:
        with Notebook("~/notes") as nb:
            nb.write("groceries", "milk")
            nb.append("groceries", "eggs")
            for note in nb.search_glob("groc*"):
                print(note.value)
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        backend: Optional[str] = None,
        config: Optional[StoreConfig] = None,
        store: Optional[NoteStoreProtocol] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Open (or create) a note store.

        Args:
            store_path: Store directory. Uses NOTETAKER_STORE_PATH or
                ~/.notetaker if not specified.
            backend: Backend name; picks the backend of a new store, or
                overrides the configured one for this session.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            store: Injected note store (skips backend creation).
            clock: Local-time source for timestamped appends.
        """
        # --- Config resolution ---
        if config is not None:
            self._config = config
            self._store_path = config.path
        else:
            if store_path is not None:
                self._store_path = Path(store_path).expanduser().resolve()
            else:
                self._store_path = get_default_store_path()
            if backend:
                # A bad name must not be written into a new store's config
                from .backend import check_backend
                check_backend(backend)
            self._config = load_or_create_config(self._store_path, backend)

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(self._store_path)

        # --- Storage backend (injected or factory-created) ---
        if store is not None:
            self._store = store
        else:
            from .backend import create_store
            try:
                self._store = create_store(self._config, clock=clock)
            except Exception:
                self._detach_ops_log()
                raise

        logger.debug("Opened %s store at %s", self._config.backend, self._store_path)

    @property
    def config(self) -> StoreConfig:
        """Public access to store configuration."""
        return self._config

    @property
    def store(self) -> NoteStoreProtocol:
        return self._store

    @property
    def store_path(self) -> Path:
        return self._store_path

    # -------------------------------------------------------------------------
    # Write operations
    # -------------------------------------------------------------------------

    def write(self, name: str, value: str) -> None:
        self._store.write(name, value)
        logger.info("write %s", name)

    def append(self, name: str, value: str) -> None:
        self._store.append(name, value)
        logger.info("append %s", name)

    def append_datetime(self, name: str, value: str) -> None:
        self._store.append_datetime(name, value)
        logger.info("append_datetime %s", name)

    def delete(self, name: str) -> bool:
        deleted = self._store.delete(name)
        if deleted:
            logger.info("delete %s", name)
        return deleted

    def delete_matching(self, pattern: Pattern) -> int:
        count = self._store.delete_matching(pattern)
        logger.info("delete_matching %s: %d removed",
                    pattern if isinstance(pattern, str) else pattern.pattern, count)
        return count

    def delete_glob(self, glob: str) -> int:
        """Delete every note whose whole name matches a ``*``/``?`` glob."""
        return self.delete_matching(glob_to_regex(glob))

    def rename(self, old_name: str, new_name: str) -> RenameResult:
        result = self._store.rename(old_name, new_name)
        logger.info("rename %s -> %s: %s", old_name, new_name, result.value)
        return result

    def optimize(self) -> None:
        self._store.optimize()

    # -------------------------------------------------------------------------
    # Query operations
    # -------------------------------------------------------------------------

    def search(self, pattern: Pattern) -> Iterator[Note]:
        return self._store.search(pattern)

    def search_glob(self, glob: str) -> Iterator[Note]:
        """Notes whose whole name matches a ``*``/``?`` glob."""
        return self._store.search(glob_to_regex(glob))

    def enumerate(self) -> Iterator[Note]:
        return self._store.enumerate()

    def get(self, name: str) -> Optional[str]:
        """Value of the note named exactly ``name``, or None."""
        notes = list(self._store.search(f"^{re.escape(name)}\\Z"))
        return notes[0].value if notes else None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the store and detach the operations log."""
        if getattr(self, "_store", None) is not None:
            self._store.close()
            self._store = None

        self._detach_ops_log()

    def _detach_ops_log(self) -> None:
        # Remove ops log handler to avoid handler accumulation
        if getattr(self, "_ops_log_handler", None) is not None:
            logging.getLogger("notetaker").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False
