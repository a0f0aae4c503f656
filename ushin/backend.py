"""
Pluggable storage backend factory.

Creates the document store behind USHINBase from configuration. The local
backend is SQLite. External backends register via the ``ushin.backends``
entry point group.

Storage is initialized explicitly: ``init_storage()`` returns a handle that
is passed to USHINBase. There is no process-wide store state.

External backend packages provide a factory function::

    def create_store(config: StoreConfig) -> DocumentStoreProtocol:
        ...

and register it in their pyproject.toml::

    [project.entry-points."ushin.backends"]
    my-backend = "my_package.backend:create_store"
"""

import logging
from pathlib import Path
from typing import NamedTuple, Optional

from .config import StoreConfig, load_or_create_config, resolve_store_path
from .protocol import DocumentStoreProtocol

logger = logging.getLogger(__name__)

DOCUMENTS_FILENAME = "documents.db"


class StorageHandle(NamedTuple):
    """An initialized store together with the configuration that built it."""
    store: DocumentStoreProtocol
    config: StoreConfig
    is_local: bool  # True for filesystem-backed stores


def init_storage(
    path: Optional[Path] = None,
    config: Optional[StoreConfig] = None,
) -> StorageHandle:
    """
    Initialize storage for a store directory.

    Loads (or creates) the TOML config unless one is given, then builds the
    configured backend.
    """
    if config is None:
        config = load_or_create_config(resolve_store_path(path))
    store = create_store(config)
    logger.debug("Initialized %s storage at %s", config.backend, config.path)
    return StorageHandle(store=store, config=config, is_local=config.backend == "local")


def create_store(config: StoreConfig) -> DocumentStoreProtocol:
    """
    Create a document store from configuration.

    For ``backend = "local"`` (default), creates the SQLite DocumentStore.
    For other values, loads the backend via the ``ushin.backends`` entry
    point group.
    """
    if config.backend == "local":
        return _create_local_store(config)
    return _load_backend(config.backend, config)


def _create_local_store(config: StoreConfig) -> DocumentStoreProtocol:
    """Create the default local storage backend."""
    from .document_store import DocumentStore

    return DocumentStore(config.path / DOCUMENTS_FILENAME)


def _load_backend(name: str, config: StoreConfig) -> DocumentStoreProtocol:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="ushin.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. No backends registered."
    )
