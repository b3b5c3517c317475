"""
Store configuration.

A store is a directory holding notetaker.toml next to its data file::

    [store]
    version = 1
    created = "2026-10-18T09:30:00+00:00"
    backend = "sqlite"

    [notes]
    timestamp_format = "%A, %B %d, %Y %I:%M %p"

An optional [backend] table is passed through to plugin backends.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# tomllib only reads; writing needs tomli_w
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore

from .types import DEFAULT_TIMESTAMP_FORMAT


CONFIG_FILENAME = "notetaker.toml"
CONFIG_VERSION = 1

STORE_PATH_ENV = "NOTETAKER_STORE_PATH"
DEFAULT_STORE_PATH = Path.home() / ".notetaker"

DEFAULT_BACKEND = "sqlite"

# Data file per built-in backend, relative to the store directory
DATA_FILENAMES = {
    "sqlite": "notes.db",
    "json": "notes.json",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StoreConfig:
    """Where a store lives, which backend holds its notes, and how they are stamped."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=_utc_now)
    backend: str = DEFAULT_BACKEND
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT
    # Plugin backend settings from the [backend] table
    params: dict = field(default_factory=dict)

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    @property
    def data_path(self) -> Path:
        """The backend's data file (``notes.<backend>`` for plugins)."""
        return self.path / DATA_FILENAMES.get(self.backend, f"notes.{self.backend}")

    def exists(self) -> bool:
        return self.config_path.exists()

    def to_toml(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "store": {
                "version": self.version,
                "created": self.created,
                "backend": self.backend,
            },
            "notes": {"timestamp_format": self.timestamp_format},
        }
        if self.params:
            data["backend"] = dict(self.params)
        return data

    @classmethod
    def from_toml(cls, store_path: Path, data: dict[str, Any]) -> "StoreConfig":
        """
        Build a config from parsed TOML.

        Raises:
            ValueError: If the file was written by a newer version, or a
                setting has the wrong type
        """
        where = store_path / CONFIG_FILENAME
        store = data.get("store", {})
        notes = data.get("notes", {})

        version = store.get("version", CONFIG_VERSION)
        if version > CONFIG_VERSION:
            raise ValueError(
                f"Config version {version} is newer than supported ({CONFIG_VERSION})"
            )

        backend = store.get("backend", DEFAULT_BACKEND)
        if not isinstance(backend, str) or not backend:
            raise ValueError(f"Invalid backend in {where}: {backend!r}")

        timestamp_format = notes.get("timestamp_format", DEFAULT_TIMESTAMP_FORMAT)
        if not isinstance(timestamp_format, str):
            raise ValueError(f"Invalid timestamp_format in {where}: {timestamp_format!r}")

        return cls(
            path=store_path,
            version=version,
            created=store.get("created", ""),
            backend=backend,
            timestamp_format=timestamp_format,
            params=dict(data.get("backend", {})),
        )


def get_default_store_path() -> Path:
    """Store directory from NOTETAKER_STORE_PATH, else ~/.notetaker."""
    env_path = os.environ.get(STORE_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_STORE_PATH


def load_config(store_path: Path) -> StoreConfig:
    """
    Read notetaker.toml from a store directory.

    Raises:
        FileNotFoundError: If the store has no config yet
        ValueError: If the config is unusable
    """
    config_path = store_path / CONFIG_FILENAME
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Config not found: {config_path}") from None
    return StoreConfig.from_toml(store_path, data)


def save_config(config: StoreConfig) -> None:
    """Write notetaker.toml, creating the store directory if needed."""
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    config.path.mkdir(parents=True, exist_ok=True)
    with open(config.config_path, "wb") as f:
        tomli_w.dump(config.to_toml(), f)


def load_or_create_config(store_path: Path, backend: Optional[str] = None) -> StoreConfig:
    """
    Config for a store directory, creating the store on first use.

    ``backend`` chooses the backend for a new store. For an existing store
    it overrides the saved choice for this session only.
    """
    if (store_path / CONFIG_FILENAME).exists():
        config = load_config(store_path)
        if backend:
            config.backend = backend
        return config

    config = StoreConfig(path=store_path, backend=backend or DEFAULT_BACKEND)
    save_config(config)
    return config
