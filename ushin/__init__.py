"""
ushin

A graph of discussion messages and points on top of a document store.
Messages reference points; points cite earlier points. Writing a message
resolves and stores the full closure of points it depends on, so messages
can later be found by any point they touch.

Quick Start:
    from ushin import USHINBase, Message, Point, Shape

    db = USHINBase(path="~/.ushin").init()
    db.add_message(
        Message(main="cats", shapes=[Shape("feelings", ["cats"])]),
        {"cats": Point(id="cats", content="Cats bring me joy")},
    )
    db.search_points_by_content("cats")

CLI Usage:
    ushin point add "Cats bring me joy" --id cats
    ushin message add cats --shape feelings=cats
    ushin messages --point cats

Environment Variables:
    USHIN_STORE_PATH  - Override default store location (~/.ushin)
    USHIN_VERBOSE     - Set to 1 for debug logging in the CLI
"""

from .api import DEFAULT_SORT, USHINBase
from .backend import StorageHandle, init_storage
from .errors import (
    ConflictError,
    NotFound,
    PointNotFoundError,
    QueryError,
    UshinError,
    ValidationError,
)
from .tokens import tokenize
from .types import AuthorInfo, Message, Point, ReferenceLog, ResponseLog, Shape

__version__ = "0.1.0"
__all__ = [
    "USHINBase",
    "DEFAULT_SORT",
    "init_storage",
    "StorageHandle",
    "tokenize",
    "Point",
    "ReferenceLog",
    "Message",
    "Shape",
    "ResponseLog",
    "AuthorInfo",
    "UshinError",
    "ValidationError",
    "PointNotFoundError",
    "NotFound",
    "ConflictError",
    "QueryError",
]
