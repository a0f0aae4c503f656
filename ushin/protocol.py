"""
Protocol definition for the document store behind USHINBase.

The domain layer talks to storage only through this interface:
- SQLite locally (DocumentStore)
- External stores registered under the ``ushin.backends`` entry point group
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class DocumentStoreProtocol(Protocol):
    """
    Abstract JSON document store with revisions and selector queries.

    Documents are dicts carrying ``_id`` and ``_rev``. Writes return
    ``{"id": ..., "rev": ...}``. Missing documents raise ``NotFound``;
    stale revisions raise ``ConflictError``.
    """

    # -- Write operations --

    def put(self, doc: dict[str, Any]) -> dict[str, str]: ...

    def post(self, doc: dict[str, Any]) -> dict[str, str]: ...

    # -- Read operations --

    def get(self, id: str) -> dict[str, Any]: ...

    def find(
        self,
        selector: dict[str, Any],
        sort: Optional[list[dict[str, str]]] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    # -- Indexes --

    def create_index(self, fields: list[str]) -> str: ...

    # -- Identity / lifecycle --

    def get_url(self) -> str: ...

    def close(self) -> None: ...
