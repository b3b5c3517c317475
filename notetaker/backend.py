"""
Pluggable storage backend factory.

Creates a note store based on configuration. The built-in backends are
``sqlite`` (SqliteNoteStore) and ``json`` (JsonNoteStore). External
backends register via the ``notetaker.backends`` entry point group.

External backend packages provide a factory function::

    def create_store(config: StoreConfig) -> NoteStoreProtocol:
        ...

and register it in their pyproject.toml::

    [project.entry-points."notetaker.backends"]
    my-backend = "my_package.backend:create_store"
"""

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import StoreConfig
from .protocol import NoteStoreProtocol
from .types import DEFAULT_TIMESTAMP_FORMAT

BUILTIN_BACKENDS = ("sqlite", "json")


def backend_for_path(path: Path) -> str:
    """Infer the backend from a data file's suffix (``.json`` or SQLite)."""
    return "json" if Path(path).suffix.lower() == ".json" else "sqlite"


def open_store(
    path: str | Path,
    backend: Optional[str] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
    timestamp_format: Optional[str] = None,
) -> NoteStoreProtocol:
    """
    Open (creating if absent) a note store backed by the file at ``path``.

    Args:
        path: Data file (SQLite database or JSON document)
        backend: ``"sqlite"`` or ``"json"``; inferred from the suffix if None
        clock: Local-time source for append_datetime (default datetime.now)
        timestamp_format: strftime format for append_datetime stamps
    """
    path = Path(path)
    backend = backend or backend_for_path(path)
    kwargs = {
        "clock": clock or datetime.now,
        "timestamp_format": timestamp_format or DEFAULT_TIMESTAMP_FORMAT,
    }

    if backend == "sqlite":
        from .sqlite_store import SqliteNoteStore
        return SqliteNoteStore(path, **kwargs)
    if backend == "json":
        from .json_store import JsonNoteStore
        return JsonNoteStore(path, **kwargs)
    raise ValueError(
        f"Unknown backend: {backend!r}. Built-in backends: {list(BUILTIN_BACKENDS)}"
    )


def create_store(
    config: StoreConfig,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> NoteStoreProtocol:
    """
    Create the note store described by a configuration.

    Built-in backends open ``config.data_path``. Other names are loaded via
    the ``notetaker.backends`` entry point group.
    """
    if config.backend in BUILTIN_BACKENDS:
        return open_store(
            config.data_path,
            config.backend,
            clock=clock,
            timestamp_format=config.timestamp_format,
        )
    return _load_backend(config.backend, config)


def _load_backend(name: str, config: StoreConfig) -> NoteStoreProtocol:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="notetaker.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    raise _unknown_backend(name, [ep.name for ep in eps])


def check_backend(name: str) -> None:
    """
    Make sure a backend name can be opened, before anything is saved under it.

    Raises:
        ValueError: If the name is neither built in nor a registered plugin
    """
    if name in BUILTIN_BACKENDS:
        return
    from importlib.metadata import entry_points

    plugins = [ep.name for ep in entry_points(group="notetaker.backends")]
    if name not in plugins:
        raise _unknown_backend(name, plugins)


def _unknown_backend(name: str, plugins: list[str]) -> ValueError:
    if plugins:
        return ValueError(
            f"Unknown backend: {name!r}. Available: {list(BUILTIN_BACKENDS) + plugins}"
        )
    return ValueError(
        f"Unknown backend: {name!r}. Built-in backends: {list(BUILTIN_BACKENDS)}; "
        f"no plugin backends registered."
    )
