"""
Configuration management for ushin stores.

The configuration is stored as a TOML file in the store directory.
It specifies which storage backend to use and query defaults.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w


CONFIG_FILENAME = "ushin.toml"
CONFIG_VERSION = 1

DEFAULT_BACKEND = "local"
DEFAULT_SEARCH_LIMIT = 32


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    backend: str = DEFAULT_BACKEND
    # Extra parameters handed to external backends
    backend_params: dict[str, Any] = field(default_factory=dict)
    search_limit: int = DEFAULT_SEARCH_LIMIT

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory from USHIN_STORE_PATH, else ~/.ushin."""
    env = os.environ.get("USHIN_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".ushin"


def resolve_store_path(store: Optional[Path] = None) -> Path:
    """Explicit path if given, otherwise the default store path."""
    if store is not None:
        return Path(store).expanduser()
    return get_default_store_path()


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with defaults."""
    return StoreConfig(path=store_path)


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    limit = data.get("search", {}).get("limit", DEFAULT_SEARCH_LIMIT)
    if not isinstance(limit, int) or limit < 1:
        raise ValueError(f"Invalid search limit in {config_path}: {limit!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", DEFAULT_BACKEND),
        backend_params=dict(data.get("backend", {})),
        search_limit=limit,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "search": {
            "limit": config.search_limit,
        },
    }
    if config.backend_params:
        data["backend"] = config.backend_params

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
        return config
