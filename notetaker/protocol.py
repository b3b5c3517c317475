"""
Protocol definition for note storage backends.

Implemented by:
- SqliteNoteStore (relational, one table keyed by unique name)
- JsonNoteStore (single JSON document rewritten via atomic replace)

Callers (Notebook, CLI) depend only on this protocol, so backends can be
swapped without touching call sites.
"""

from typing import Iterator, Protocol, runtime_checkable

from .types import Note, Pattern, RenameResult


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """
    The storage contract shared by every backend.

    Patterns are regular expressions (strings or compiled) matched against
    note names with ``re.search`` semantics. Every mutation is durable
    before it returns.
    """

    # -- Write operations --

    def write(self, name: str, value: str) -> None: ...

    def append(self, name: str, value: str) -> None: ...

    def append_datetime(self, name: str, value: str) -> None: ...

    def delete(self, name: str) -> bool: ...

    def delete_matching(self, pattern: Pattern) -> int: ...

    def rename(self, old_name: str, new_name: str) -> RenameResult: ...

    def optimize(self) -> None: ...

    # -- Query operations --

    def search(self, pattern: Pattern) -> Iterator[Note]: ...

    def enumerate(self) -> Iterator[Note]: ...

    # -- Lifecycle --

    def close(self) -> None: ...
