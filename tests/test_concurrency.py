"""
Concurrency tests for the note stores.

Several `note` invocations can run at once against the same store (shell
loops, editor hooks). Uses multiprocessing (not threading) to simulate
separate processes.
"""

import multiprocessing
from pathlib import Path

import pytest

from notetaker.backend import open_store


# Worker functions must be top-level for multiprocessing spawn compatibility


def _worker_append(data_path: str, worker_id: int, count: int):
    """Worker that appends numbered lines to one shared note."""
    from notetaker.backend import open_store
    with open_store(Path(data_path)) as store:
        for i in range(count):
            store.append("shared", f"w{worker_id}-{i}")


def _worker_write_unique(data_path: str, worker_id: int, count: int):
    """Worker that writes notes no other worker touches."""
    from notetaker.backend import open_store
    with open_store(Path(data_path)) as store:
        for i in range(count):
            store.write(f"worker{worker_id}:note{i}", f"value {worker_id}/{i}")


def _worker_reader(data_path: str, iterations: int, queue):
    """Worker that enumerates in a loop, reporting anything malformed."""
    from notetaker.backend import open_store
    errors = []
    with open_store(Path(data_path)) as store:
        for _ in range(iterations):
            try:
                for note in store.enumerate():
                    if not note.value.startswith("value"):
                        errors.append(f"Unexpected value for {note.name}")
            except Exception as e:
                errors.append(str(e))
    queue.put(errors)


def _run(workers):
    ctx = multiprocessing.get_context("spawn")
    processes = [ctx.Process(target=target, args=args) for target, args in workers]
    for p in processes:
        p.start()
    for p in processes:
        p.join(timeout=60)
    for p in processes:
        assert p.exitcode == 0, f"Worker exited with code {p.exitcode}"


@pytest.fixture(params=["notes.db", "notes.json"])
def data_path(request, tmp_path):
    """Pre-created data file for each backend."""
    path = tmp_path / request.param
    open_store(path).close()
    return str(path)


class TestConcurrentWrites:

    def test_parallel_appends_lose_nothing(self, data_path):
        """Every line appended by every worker is present afterwards."""
        num_workers = 4
        appends_per_worker = 10

        _run([(_worker_append, (data_path, w, appends_per_worker))
              for w in range(num_workers)])

        with open_store(Path(data_path)) as store:
            [note] = list(store.search("^shared$"))
        lines = note.value.split("\n")
        expected = {f"w{w}-{i}" for w in range(num_workers)
                    for i in range(appends_per_worker)}
        assert len(lines) == len(expected)
        assert set(lines) == expected

    def test_parallel_appends_keep_per_worker_order(self, data_path):
        _run([(_worker_append, (data_path, w, 8)) for w in range(3)])

        with open_store(Path(data_path)) as store:
            [note] = list(store.search("^shared$"))
        lines = note.value.split("\n")
        for w in range(3):
            mine = [line for line in lines if line.startswith(f"w{w}-")]
            assert mine == [f"w{w}-{i}" for i in range(8)]

    def test_parallel_unique_writes(self, data_path):
        num_workers = 4
        notes_per_worker = 8

        _run([(_worker_write_unique, (data_path, w, notes_per_worker))
              for w in range(num_workers)])

        with open_store(Path(data_path)) as store:
            names = [n.name for n in store.enumerate()]
        assert len(names) == num_workers * notes_per_worker
        assert len(set(names)) == len(names)


class TestConcurrentReadWrite:

    def test_readers_never_see_partial_state(self, data_path):
        """Readers running alongside writers only ever see whole notes."""
        with open_store(Path(data_path)) as store:
            store.write("seed", "value seed")

        ctx = multiprocessing.get_context("spawn")
        queue = ctx.Queue()
        readers = [ctx.Process(target=_worker_reader, args=(data_path, 20, queue))
                   for _ in range(2)]
        writers = [ctx.Process(target=_worker_write_unique, args=(data_path, w, 10))
                   for w in range(2)]
        for p in readers + writers:
            p.start()
        errors = [queue.get(timeout=60) for _ in readers]
        for p in readers + writers:
            p.join(timeout=60)
            assert p.exitcode == 0

        assert errors == [[], []]
