"""
Note store using SQLite.

Notes live in a single table keyed by unique name. Regex matching is pushed
into the engine through a registered ``regexp`` function, so pattern search
and pattern delete run as ``WHERE Name REGEXP ?`` rather than
fetch-then-filter.

Rename relies on the UNIQUE constraint: a collision surfaces as an
IntegrityError with the SQLITE_CONSTRAINT_UNIQUE code and is reported as
RenameResult.NEW_NAME_ALREADY_EXISTS. Any other engine error, including
other constraint failures, propagates.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from .types import (
    DEFAULT_TIMESTAMP_FORMAT,
    Note,
    Pattern,
    RenameResult,
    appended_value,
    compile_pattern,
    format_timestamp,
    pattern_source,
    timestamped_value,
)

logger = logging.getLogger(__name__)


def _regexp(pattern: str, name: Optional[str]) -> bool:
    """SQL ``X REGEXP Y`` calls this as regexp(Y, X)."""
    if name is None:
        return False
    return compile_pattern(pattern).search(name) is not None


class SqliteNoteStore:
    """
    SQLite-backed note store.

    Ordering: most-recently-inserted first (rowid descending). Overwrites
    are insert-or-replace and therefore move a note to the front; renames
    keep its position.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ):
        """
        Args:
            db_path: Path to SQLite database file (created if absent)
            clock: Source of the local time used by append_datetime
            timestamp_format: strftime format for append_datetime stamps
        """
        self._db_path = Path(db_path)
        self._clock = clock
        self._timestamp_format = timestamp_format
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Open the connection, register REGEXP and ensure the schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        # isolation_level=None gives us manual transaction control
        # so read-modify-write appends can use BEGIN IMMEDIATE
        self._conn = sqlite3.connect(str(self._db_path), isolation_level=None)
        self._conn.execute("PRAGMA busy_timeout=5000")
        self._conn.create_function("regexp", 2, _regexp, deterministic=True)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS Notes (
                Name TEXT UNIQUE,
                Value TEXT
            )
        """)

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        else:
            self._conn.execute("COMMIT")

    def _stamp(self) -> str:
        return format_timestamp(self._clock(), self._timestamp_format)

    # -------------------------------------------------------------------------
    # Point lookup
    # -------------------------------------------------------------------------

    def _get_value(self, name: str) -> Optional[str]:
        """Value of the named note, or None when absent."""
        row = self._conn.execute(
            "SELECT Value FROM Notes WHERE Name = ?", (name,)
        ).fetchone()
        if row is None:
            return None
        return row[0]

    def _upsert(self, name: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO Notes (Name, Value) VALUES (?, ?)",
            (name, value),
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def write(self, name: str, value: str) -> None:
        """Create or overwrite a note."""
        self._upsert(name, value)
        logger.debug("write %r (%d chars)", name, len(value))

    def append(self, name: str, value: str) -> None:
        """Append a line to a note, creating it if absent."""
        with self._transaction():
            self._upsert(name, appended_value(self._get_value(name), value))
        logger.debug("append %r", name)

    def append_datetime(self, name: str, value: str) -> None:
        """Append a timestamped block to a note, creating it if absent."""
        stamp = self._stamp()
        with self._transaction():
            self._upsert(name, timestamped_value(self._get_value(name), value, stamp))
        logger.debug("append_datetime %r [%s]", name, stamp)

    def delete(self, name: str) -> bool:
        """
        Delete the note with exactly this name.

        Returns:
            True if a note existed and was deleted
        """
        cursor = self._conn.execute("DELETE FROM Notes WHERE Name = ?", (name,))
        deleted = cursor.rowcount > 0
        logger.debug("delete %r -> %s", name, deleted)
        return deleted

    def delete_matching(self, pattern: Pattern) -> int:
        """
        Delete every note whose name matches the pattern.

        Returns:
            Number of notes deleted
        """
        source = pattern_source(pattern)
        cursor = self._conn.execute(
            "DELETE FROM Notes WHERE Name REGEXP ?", (source,)
        )
        logger.debug("delete_matching %r -> %d", source, cursor.rowcount)
        return cursor.rowcount

    def rename(self, old_name: str, new_name: str) -> RenameResult:
        """
        Rename a note, keeping its value.

        A collision with an existing note is detected by the UNIQUE
        constraint; both notes are left as they were.
        """
        try:
            cursor = self._conn.execute(
                "UPDATE Notes SET Name = ? WHERE Name = ?", (new_name, old_name)
            )
        except sqlite3.IntegrityError as e:
            if e.sqlite_errorcode == sqlite3.SQLITE_CONSTRAINT_UNIQUE:
                logger.debug("rename %r -> %r: name taken", old_name, new_name)
                return RenameResult.NEW_NAME_ALREADY_EXISTS
            raise

        if cursor.rowcount == 0:
            return RenameResult.OLD_NAME_DOES_NOT_EXIST
        logger.debug("rename %r -> %r", old_name, new_name)
        return RenameResult.SUCCESS

    def optimize(self) -> None:
        """Reclaim free pages with VACUUM. Failures are logged, not raised."""
        try:
            self._conn.execute("VACUUM")
        except sqlite3.Error as e:
            logger.warning("VACUUM failed on %s: %s", self._db_path, e)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def search(self, pattern: Pattern) -> Iterator[Note]:
        """Notes whose name matches the pattern, newest first."""
        source = pattern_source(pattern)
        return self._rows(
            "SELECT Name, Value FROM Notes WHERE Name REGEXP ? ORDER BY rowid DESC",
            (source,),
        )

    def enumerate(self) -> Iterator[Note]:
        """Every note, newest first."""
        return self._rows("SELECT Name, Value FROM Notes ORDER BY rowid DESC")

    def _rows(self, sql: str, params: tuple = ()) -> Iterator[Note]:
        cursor = self._conn.execute(sql, params)
        for name, value in cursor:
            yield Note(name, value)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
