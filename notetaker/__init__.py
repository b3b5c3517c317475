"""
notetaker: named text notes kept in SQLite or a JSON document.

Notes are addressed by exact name, glob or regular expression. Both
backends satisfy NoteStoreProtocol with the same semantics.
"""

__version__ = "0.1.0"

from .api import Notebook
from .backend import create_store, open_store
from .json_store import JsonNoteStore
from .protocol import NoteStoreProtocol
from .sqlite_store import SqliteNoteStore
from .types import Note, RenameResult, glob_to_regex

__all__ = [
    "JsonNoteStore",
    "Note",
    "NoteStoreProtocol",
    "Notebook",
    "RenameResult",
    "SqliteNoteStore",
    "create_store",
    "glob_to_regex",
    "open_store",
]
