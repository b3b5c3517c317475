"""
Shared pytest fixtures for notetaker tests.

Provides real stores for both backends, a fixed clock for timestamped
appends, and an in-memory store for exercising the Notebook facade.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator

import pytest

from notetaker.json_store import JsonNoteStore
from notetaker.sqlite_store import SqliteNoteStore
from notetaker.types import Note, RenameResult, compile_pattern

# Sunday, 18 October 2026, 09:30 local time
FIXED_NOW = datetime(2026, 10, 18, 9, 30)

# Locale-independent stamp format for exact assertions
TEST_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"
FIXED_STAMP = "2026-10-18 09:30"


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_store(backend: str, directory: Path, **kwargs):
    """Open a store of the given backend inside ``directory``."""
    kwargs.setdefault("clock", fixed_clock)
    kwargs.setdefault("timestamp_format", TEST_TIMESTAMP_FORMAT)
    if backend == "sqlite":
        return SqliteNoteStore(directory / "notes.db", **kwargs)
    return JsonNoteStore(directory / "notes.json", **kwargs)


@pytest.fixture
def sqlite_store(tmp_path):
    """A SqliteNoteStore with a fixed clock."""
    store = make_store("sqlite", tmp_path)
    yield store
    store.close()


@pytest.fixture
def json_store(tmp_path):
    """A JsonNoteStore with a fixed clock."""
    store = make_store("json", tmp_path)
    yield store
    store.close()


@pytest.fixture(params=["sqlite", "json"])
def store(request, tmp_path):
    """Each backend in turn, for contract tests."""
    store = make_store(request.param, tmp_path)
    yield store
    store.close()


class MemoryNoteStore:
    """In-memory note store satisfying NoteStoreProtocol (insertion order)."""

    def __init__(self):
        self._notes: dict[str, str] = {}
        self.optimize_calls = 0
        self.closed = False

    def write(self, name: str, value: str) -> None:
        self._notes[name] = value

    def append(self, name: str, value: str) -> None:
        old = self._notes.get(name)
        self._notes[name] = value if old is None else f"{old}\n{value}"

    def append_datetime(self, name: str, value: str) -> None:
        old = self._notes.get(name)
        if old is None:
            self._notes[name] = f"[{FIXED_STAMP}]\n{value}"
        else:
            self._notes[name] = f"{old}\n\n[{FIXED_STAMP}]\n{value}"

    def delete(self, name: str) -> bool:
        return self._notes.pop(name, None) is not None

    def delete_matching(self, pattern) -> int:
        regex = compile_pattern(pattern)
        doomed = [name for name in self._notes if regex.search(name)]
        for name in doomed:
            del self._notes[name]
        return len(doomed)

    def rename(self, old_name: str, new_name: str) -> RenameResult:
        if old_name not in self._notes:
            return RenameResult.OLD_NAME_DOES_NOT_EXIST
        if new_name in self._notes and new_name != old_name:
            return RenameResult.NEW_NAME_ALREADY_EXISTS
        self._notes[new_name] = self._notes.pop(old_name)
        return RenameResult.SUCCESS

    def optimize(self) -> None:
        self.optimize_calls += 1

    def search(self, pattern) -> Iterator[Note]:
        regex = compile_pattern(pattern)
        return iter([Note(n, v) for n, v in self._notes.items() if regex.search(n)])

    def enumerate(self) -> Iterator[Note]:
        return iter([Note(n, v) for n, v in self._notes.items()])

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def memory_store():
    """Create a fresh MemoryNoteStore instance."""
    return MemoryNoteStore()


@pytest.fixture(autouse=True)
def _isolate_store_env(tmp_path, monkeypatch):
    """Point the default store at a temp dir and drop stray log handlers."""
    monkeypatch.setenv("NOTETAKER_STORE_PATH", str(tmp_path / "default-store"))
    yield
    notes_logger = logging.getLogger("notetaker")
    for handler in list(notes_logger.handlers):
        notes_logger.removeHandler(handler)
        handler.close()
