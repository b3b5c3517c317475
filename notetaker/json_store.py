"""
Note store using a single JSON document.

The document is a JSON object mapping note name to note value. Every
mutation streams the existing document field by field into a temp file in
the same directory, passing each field through, transforming it, or
dropping it, and finally swaps the temp file into place with os.replace.
A crash at any point before the replace leaves the original untouched.

The whole document is never held in memory: fields are decoded one at a
time from a sliding buffer and written out as soon as they are decided.

Limitations:
- rename does not detect collisions. Renaming onto an existing name
  leaves two fields with that name in the document; both are returned by
  enumerate/search. rename never returns NEW_NAME_ALREADY_EXISTS here.
- search, delete_matching and enumerate are linear scans.
- Writers in separate processes serialize on an advisory flock held on a
  sidecar ``<document>.lock`` file. Readers do not lock; they see either
  the old or the new document, never a partial one.
"""

import fcntl
import json
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional, TextIO

from .types import (
    DEFAULT_TIMESTAMP_FORMAT,
    Note,
    Pattern,
    RenameResult,
    appended_value,
    compile_pattern,
    format_timestamp,
    timestamped_value,
)

logger = logging.getLogger(__name__)

# Characters read per refill of the decode buffer
CHUNK_SIZE = 64 * 1024

_WHITESPACE = " \t\n\r"
# Characters that can continue a JSON number
_NUMBER_CHARS = frozenset("0123456789+-.eE")
_decoder = json.JSONDecoder()

# Documents saved by other editors may start with a UTF-8 BOM
_READ_ENCODING = "utf-8-sig"


class _FieldReader:
    """
    Incremental reader for the top-level fields of a JSON object.

    Yields ``Note(name, value)`` per field, in document order. Non-string
    values are rendered back to their JSON text. Malformed input raises
    json.JSONDecodeError.
    """

    def __init__(self, fp: TextIO, chunk_size: int = CHUNK_SIZE):
        self._fp = fp
        self._chunk_size = chunk_size
        self._buf = ""
        self._pos = 0
        self._eof = False

    def _fill(self) -> bool:
        """Read another chunk, dropping consumed text. False at EOF."""
        if self._eof:
            return False
        chunk = self._fp.read(self._chunk_size)
        if not chunk:
            self._eof = True
            return False
        self._buf = self._buf[self._pos:] + chunk
        self._pos = 0
        return True

    def _peek(self) -> str:
        """Next non-whitespace character without consuming it ('' at EOF)."""
        while True:
            while self._pos < len(self._buf) and self._buf[self._pos] in _WHITESPACE:
                self._pos += 1
            if self._pos < len(self._buf):
                return self._buf[self._pos]
            if not self._fill():
                return ""

    def _expect(self, ch: str, what: str) -> None:
        if self._peek() != ch:
            raise json.JSONDecodeError(f"Expecting {what}", self._buf, self._pos)
        self._pos += 1

    def _decode(self):
        """Decode one JSON value starting at the cursor."""
        self._peek()
        while True:
            try:
                obj, end = _decoder.raw_decode(self._buf, self._pos)
            except json.JSONDecodeError:
                if self._fill():
                    continue
                raise
            # A value touching the end of the buffer may be cut short, e.g. a
            # number split after its "." or "e"
            if self._may_continue(obj, end) and self._fill():
                continue
            self._pos = end
            return obj

    def _may_continue(self, obj, end: int) -> bool:
        if self._eof:
            return False
        if end == len(self._buf):
            return True
        if isinstance(obj, (int, float)) and not isinstance(obj, bool):
            return all(ch in _NUMBER_CHARS for ch in self._buf[end:])
        return False

    def __iter__(self) -> Iterator[Note]:
        self._expect("{", "'{'")
        if self._peek() == "}":
            self._pos += 1
        else:
            while True:
                if self._peek() != '"':
                    raise json.JSONDecodeError(
                        "Expecting property name enclosed in double quotes",
                        self._buf, self._pos,
                    )
                name = self._decode()
                self._expect(":", "':' delimiter")
                value = self._decode()
                if not isinstance(value, str):
                    value = json.dumps(value, ensure_ascii=False)
                yield Note(name, value)

                nxt = self._peek()
                if nxt == ",":
                    self._pos += 1
                elif nxt == "}":
                    self._pos += 1
                    break
                else:
                    raise json.JSONDecodeError(
                        "Expecting ',' delimiter", self._buf, self._pos
                    )
        if self._peek():
            raise json.JSONDecodeError("Extra data", self._buf, self._pos)


class _FieldWriter:
    """Writes a JSON object one field at a time, one field per line."""

    def __init__(self, fp: TextIO):
        self._fp = fp
        self._count = 0
        fp.write("{")

    def write(self, name: str, value: str) -> None:
        sep = "," if self._count else ""
        self._fp.write(
            f"{sep}\n  {json.dumps(name, ensure_ascii=False)}: "
            f"{json.dumps(value, ensure_ascii=False)}"
        )
        self._count += 1

    def close(self) -> None:
        self._fp.write("\n}\n" if self._count else "}\n")


class JsonNoteStore:
    """
    JSON-document-backed note store.

    Ordering: document order. New notes are appended at the end; an
    overwrite keeps the note's position.
    """

    def __init__(
        self,
        doc_path: Path,
        *,
        clock: Callable[[], datetime] = datetime.now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ):
        """
        Args:
            doc_path: Path to the JSON document (created as ``{}`` if absent
                or empty)
            clock: Source of the local time used by append_datetime
            timestamp_format: strftime format for append_datetime stamps
        """
        self._path = Path(doc_path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._clock = clock
        self._timestamp_format = timestamp_format
        self._init_doc()

    def _init_doc(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._writer_lock():
            if not self._path.exists() or self._path.stat().st_size == 0:
                with open(self._path, "w", encoding="utf-8") as f:
                    f.write("{}\n")
                    f.flush()
                    os.fsync(f.fileno())

    @property
    def path(self) -> Path:
        return self._path

    def _stamp(self) -> str:
        return format_timestamp(self._clock(), self._timestamp_format)

    # -------------------------------------------------------------------------
    # Rewrite protocol
    # -------------------------------------------------------------------------

    @contextmanager
    def _writer_lock(self) -> Iterator[None]:
        fd = os.open(self._lock_path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    @contextmanager
    def _rewriting(self) -> Iterator[tuple[Iterator[Note], _FieldWriter]]:
        """
        Stream the current document into a replacement.

        Yields (fields, writer). Whatever the caller writes becomes the new
        document once the block exits cleanly; on any exception the temp
        file is discarded and the original is left as it was.
        """
        with self._writer_lock():
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as out, \
                        open(self._path, "r", encoding=_READ_ENCODING) as src:
                    writer = _FieldWriter(out)
                    yield iter(_FieldReader(src)), writer
                    writer.close()
                    out.flush()
                    os.fsync(out.fileno())
                shutil.copymode(self._path, tmp_name)
                os.replace(tmp_name, self._path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise
            self._fsync_dir()

    def _fsync_dir(self) -> None:
        """Persist the rename itself."""
        dir_fd = os.open(self._path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    def _apply(self, name: str, update: Callable[[Optional[str]], Optional[str]]) -> bool:
        """
        Rewrite the document, replacing the field ``name`` with update(old).

        update returning None drops the field. If ``name`` was never seen,
        update(None) is appended (unless it is None).

        Returns:
            True if the field existed
        """
        found = False
        with self._rewriting() as (fields, out):
            for note in fields:
                if note.name != name:
                    out.write(*note)
                    continue
                found = True
                new_value = update(note.value)
                if new_value is not None:
                    out.write(name, new_value)
            if not found:
                new_value = update(None)
                if new_value is not None:
                    out.write(name, new_value)
        return found

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def write(self, name: str, value: str) -> None:
        """Create or overwrite a note."""
        self._apply(name, lambda old: value)
        logger.debug("write %r (%d chars)", name, len(value))

    def append(self, name: str, value: str) -> None:
        """Append a line to a note, creating it if absent."""
        self._apply(name, lambda old: appended_value(old, value))
        logger.debug("append %r", name)

    def append_datetime(self, name: str, value: str) -> None:
        """Append a timestamped block to a note, creating it if absent."""
        stamp = self._stamp()
        self._apply(name, lambda old: timestamped_value(old, value, stamp))
        logger.debug("append_datetime %r [%s]", name, stamp)

    def delete(self, name: str) -> bool:
        """Delete the note with exactly this name. True if it existed."""
        deleted = self._apply(name, lambda old: None)
        logger.debug("delete %r -> %s", name, deleted)
        return deleted

    def delete_matching(self, pattern: Pattern) -> int:
        """Delete every note whose name matches. Returns the count."""
        regex = compile_pattern(pattern)
        deleted = 0
        with self._rewriting() as (fields, out):
            for note in fields:
                if regex.search(note.name):
                    deleted += 1
                else:
                    out.write(*note)
        logger.debug("delete_matching %r -> %d", regex.pattern, deleted)
        return deleted

    def rename(self, old_name: str, new_name: str) -> RenameResult:
        """
        Rename a note, keeping its value and position.

        Does not check whether ``new_name`` is already in use.
        """
        renamed = False
        with self._rewriting() as (fields, out):
            for note in fields:
                if note.name == old_name:
                    renamed = True
                    out.write(new_name, note.value)
                else:
                    out.write(*note)
        if not renamed:
            return RenameResult.OLD_NAME_DOES_NOT_EXIST
        logger.debug("rename %r -> %r", old_name, new_name)
        return RenameResult.SUCCESS

    def optimize(self) -> None:
        """Nothing to compact; every write already produces a fresh file."""

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def search(self, pattern: Pattern) -> Iterator[Note]:
        """Notes whose name matches the pattern, in document order."""
        regex = compile_pattern(pattern)
        return (note for note in self.enumerate() if regex.search(note.name))

    def enumerate(self) -> Iterator[Note]:
        """Every note, in document order."""
        with open(self._path, "r", encoding=_READ_ENCODING) as src:
            yield from _FieldReader(src)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Nothing is held open between operations."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
