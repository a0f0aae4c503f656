"""
Document store using SQLite.

Stores JSON documents keyed by ID, each carrying a revision marker. This is
the local backend behind USHINBase; other stores plug in through
``ushin.backend``.

The document store is responsible for:
- Document identity (caller ID or generated)
- Optimistic revision checking on writes
- Declared secondary indexes
- Selector queries with sort and paging
"""

import json
import logging
import re
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Optional

from .errors import ConflictError, NotFound, QueryError, ValidationError
from .selector import matches, parse_sort, sort_docs

logger = logging.getLogger(__name__)

# Index fields are dotted paths of plain identifiers
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def _next_rev(previous: Optional[str]) -> str:
    """Revision markers are ``<generation>-<random hex>``."""
    generation = int(previous.split("-", 1)[0]) + 1 if previous else 1
    return f"{generation}-{uuid.uuid4().hex}"


class DocumentStore:
    """
    SQLite-backed store for JSON documents.

    The ``type`` field is mirrored into its own column so selectors that pin
    a document type only scan that type. Everything else is matched in
    Python against the decoded body.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._indexes: dict[str, list[str]] = {}
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                rev TEXT NOT NULL,
                type TEXT,
                body TEXT NOT NULL
            )
        """)
        self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(type)"
        )

        # Declared query indexes (field lists), persisted across opens
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS indexes (
                name TEXT PRIMARY KEY,
                fields_json TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

        self._conn.commit()

        for row in self._conn.execute("SELECT name, fields_json FROM indexes"):
            self._indexes[row["name"]] = json.loads(row["fields_json"])

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def _current_rev(self, id: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT rev FROM documents WHERE id = ?", (id,)
        ).fetchone()
        return row["rev"] if row else None

    def _write(self, id: str, rev: str, doc: dict[str, Any]) -> None:
        body = {k: v for k, v in doc.items() if k not in ("_id", "_rev")}
        doc_type = body.get("type")
        self._conn.execute("""
            INSERT OR REPLACE INTO documents (id, rev, type, body)
            VALUES (?, ?, ?, ?)
        """, (id, rev, doc_type if isinstance(doc_type, str) else None,
              json.dumps(body, ensure_ascii=False)))
        self._conn.commit()

    def put(self, doc: dict[str, Any]) -> dict[str, str]:
        """
        Insert or replace a document.

        When ``_rev`` is supplied it must match the stored revision.
        Without ``_rev`` the write overwrites whatever is stored.

        Returns:
            ``{"id": ..., "rev": ...}`` of the new revision
        """
        id = doc.get("_id")
        if not id:
            raise ValidationError("Document must have an _id")
        current = self._current_rev(id)
        supplied = doc.get("_rev")
        if supplied is not None and supplied != current:
            raise ConflictError(id)
        rev = _next_rev(current)
        self._write(id, rev, doc)
        return {"id": id, "rev": rev}

    def post(self, doc: dict[str, Any]) -> dict[str, str]:
        """
        Create a new document, generating an ID when none is given.

        Raises:
            ConflictError: If a document with the given ID already exists
        """
        id = doc.get("_id") or uuid.uuid4().hex
        if self._current_rev(id) is not None:
            raise ConflictError(id)
        rev = _next_rev(None)
        self._write(id, rev, doc)
        return {"id": id, "rev": rev}

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> dict[str, Any]:
        return {**json.loads(row["body"]), "_id": row["id"], "_rev": row["rev"]}

    def get(self, id: str) -> dict[str, Any]:
        """
        Get a document by ID.

        Raises:
            NotFound: If no document has this ID
        """
        row = self._conn.execute(
            "SELECT id, rev, body FROM documents WHERE id = ?", (id,)
        ).fetchone()
        if row is None:
            raise NotFound(id)
        return self._row_to_doc(row)

    def find(
        self,
        selector: dict[str, Any],
        sort: Optional[list] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Find documents matching a selector.

        Args:
            selector: Mango-style selector (see ``ushin.selector``)
            sort: Field names or ``{field: "asc"|"desc"}`` entries
            limit: Maximum number of results (None for all)
            skip: Number of leading results to drop

        Raises:
            QueryError: On a malformed selector, or a sort not covered by a
                declared index
        """
        fields, descending = parse_sort(sort)
        if fields:
            self._require_sort_index(fields)

        doc_type = selector.get("type") if selector else None
        if isinstance(doc_type, str):
            rows = self._conn.execute(
                "SELECT id, rev, body FROM documents WHERE type = ?", (doc_type,)
            )
        else:
            rows = self._conn.execute("SELECT id, rev, body FROM documents")

        docs = [doc for doc in map(self._row_to_doc, rows) if matches(doc, selector)]
        docs = sort_docs(docs, fields, descending)

        start = skip or 0
        end = start + limit if limit is not None else None
        return docs[start:end]

    # -------------------------------------------------------------------------
    # Indexes
    # -------------------------------------------------------------------------

    def _require_sort_index(self, fields: list[str]) -> None:
        for index_fields in self._indexes.values():
            if index_fields[:len(fields)] == fields:
                return
        raise QueryError(f"No index exists for sort fields: {fields}")

    def create_index(self, fields: list[str]) -> str:
        """
        Declare a composite index over the given fields.

        Declarations gate which sorts ``find`` accepts. Only the type
        column is indexed in SQLite; other fields are matched in Python.

        Returns:
            "created" for a new index, "exists" if already declared
        """
        if not fields:
            raise QueryError("An index needs at least one field")
        for f in fields:
            if not _FIELD_RE.match(f):
                raise QueryError(f"Invalid index field name: {f!r}")

        name = "idx_" + "_".join(f.replace(".", "__") for f in fields)
        if name in self._indexes:
            return "exists"

        self._conn.execute(
            "INSERT OR REPLACE INTO indexes (name, fields_json) VALUES (?, ?)",
            (name, json.dumps(fields)),
        )
        self._conn.commit()
        self._indexes[name] = list(fields)
        logger.debug("Created index %s on %s", name, fields)
        return "created"

    def list_indexes(self) -> list[list[str]]:
        """Field lists of all declared indexes."""
        return [list(f) for f in self._indexes.values()]

    # -------------------------------------------------------------------------
    # Identity / Lifecycle
    # -------------------------------------------------------------------------

    def get_url(self) -> str:
        """Stable identity URL of this store, generated on first use."""
        row = self._conn.execute("SELECT value FROM meta WHERE key = 'url'").fetchone()
        if row is not None:
            return row["value"]
        url = f"ushin://{uuid.uuid4().hex}"
        self._conn.execute("INSERT INTO meta (key, value) VALUES ('url', ?)", (url,))
        self._conn.commit()
        return url

    def count(self) -> int:
        """Count all documents."""
        return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
