"""
Error types and error logging for ushin.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class UshinError(Exception):
    """Base class for errors raised by ushin."""


class ValidationError(UshinError, ValueError):
    """Malformed input: missing main point, bad createdAt, point without ID."""


class PointNotFoundError(UshinError, LookupError):
    """A point referenced by a message could not be resolved."""

    def __init__(self, point_id: str, message: str = "Point ID not found in store"):
        super().__init__(f"{message}: {point_id!r}")
        self.point_id = point_id


class NotFound(UshinError, KeyError):
    """Store-level miss for a document ID."""

    def __init__(self, doc_id: str):
        super().__init__(doc_id)
        self.doc_id = doc_id

    def __str__(self) -> str:
        return f"Document not found: {self.doc_id!r}"


class ConflictError(UshinError):
    """Write rejected because the supplied revision is stale or the ID is taken."""

    def __init__(self, doc_id: str, message: str = "Document update conflict"):
        super().__init__(f"{message}: {doc_id!r}")
        self.doc_id = doc_id


class QueryError(UshinError, ValueError):
    """Malformed selector or a sort the declared indexes cannot serve."""


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path, respecting USHIN_STORE_PATH."""
    if store_path is not None:
        return Path(store_path) / "ushin-errors.log"
    store = os.environ.get("USHIN_STORE_PATH")
    if store:
        return Path(store) / "ushin-errors.log"
    return Path.home() / ".ushin" / "ushin-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory; defaults to the configured one

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
