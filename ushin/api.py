"""
Core API for the message/point graph.

- add_point() / get_point(): atomic content units with search tokens
- add_message(): resolve the point closure, persist unseen points, store
- get_points_for_message(): read-side mirror of the closure
- search_*(): time range, point membership, and text token queries
- get_author_info() / set_author_info(): the local author record
"""

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Optional, Union

from .backend import init_storage
from .config import DEFAULT_SEARCH_LIMIT, StoreConfig
from .errors import NotFound, PointNotFoundError, ValidationError
from .logging_config import configure_ops_log
from .protocol import DocumentStoreProtocol
from .tokens import tokenize
from .types import (
    AUTHOR_KEY, MESSAGE_TYPE, POINT_TYPE,
    AuthorInfo, Message, Point,
    as_point, now_millis, shapes_to_doc, to_epoch_millis,
)

logger = logging.getLogger(__name__)

# Newest first; "type" leads so the sort is served by the type/createdAt indexes
DEFAULT_SORT = [{"type": "desc"}, {"createdAt": "desc"}]

# Field combinations the queries below rely on
INDEXES = (
    ("type",),
    ("type", "createdAt"),
    ("type", "createdAt", "textSearch"),
    ("type", "createdAt", "allPoints"),
)

PointLike = Union[Point, Mapping[str, Any]]


def _point_id(point: Union[PointLike, str]) -> str:
    if isinstance(point, str):
        return point
    if isinstance(point, Point):
        return point.id
    return point["_id"]


def _created_millis(value: Any) -> int:
    """Stored createdAt for a point: epoch millis, defaulting to now."""
    if value is None:
        return now_millis()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return to_epoch_millis(value)


def _millis_condition(cond: Any) -> Any:
    """Convert datetime and date operands of a createdAt condition to epoch millis."""
    if isinstance(cond, date):
        return to_epoch_millis(cond)
    if isinstance(cond, list):
        return [_millis_condition(c) for c in cond]
    if isinstance(cond, dict):
        return {k: _millis_condition(v) for k, v in cond.items()}
    return cond


class USHINBase:
    """
    Messages and points on top of a document store.

    Wraps an injected store (anything satisfying DocumentStoreProtocol), or
    initializes one from the store directory's configuration. Call
    ``init()`` before use: it resolves the author URL and declares the
    query indexes.
    """

    def __init__(
        self,
        store: Optional[DocumentStoreProtocol] = None,
        *,
        path: Optional[Path] = None,
        config: Optional[StoreConfig] = None,
    ):
        self._ops_log_handler = None
        if store is None:
            handle = init_storage(path, config)
            store, config = handle.store, handle.config
            if handle.is_local:
                self._ops_log_handler = configure_ops_log(config.path)
        self._store = store
        self.config = config
        self.default_limit = config.search_limit if config else DEFAULT_SEARCH_LIMIT
        self.author_url: Optional[str] = None

    @property
    def store(self) -> DocumentStoreProtocol:
        return self._store

    def init(self) -> "USHINBase":
        """Resolve the author identity and declare indexes. Safe to repeat."""
        self.author_url = self._store.get_url()
        for fields in INDEXES:
            self.create_index(*fields)
        return self

    def create_index(self, *fields: str) -> str:
        return self._store.create_index(list(fields))

    # -------------------------------------------------------------------------
    # Author info
    # -------------------------------------------------------------------------

    def get_author_info(self) -> AuthorInfo:
        """Get the author record, creating an empty one on first access."""
        try:
            doc = self._store.get(AUTHOR_KEY)
        except NotFound:
            logger.info("Creating author record")
            self._store.put({"_id": AUTHOR_KEY})
            doc = self._store.get(AUTHOR_KEY)
        return AuthorInfo.from_doc(doc)

    def set_author_info(self, info: Optional[Mapping[str, Any]] = None, **fields: Any) -> AuthorInfo:
        """Merge fields into the author record, keeping unspecified ones."""
        current = self.get_author_info()
        merged = {**current.fields, **(info or {}), **fields}
        merged.pop("_id", None)
        merged.pop("_rev", None)
        result = self._store.put({**merged, "_id": AUTHOR_KEY, "_rev": current.rev})
        return AuthorInfo(fields=merged, rev=result["rev"])

    # -------------------------------------------------------------------------
    # Points
    # -------------------------------------------------------------------------

    def add_point(self, point: PointLike) -> str:
        """
        Store a point, computing its search tokens.

        Without an ID the store assigns one; with an ID the point is
        upserted. A point carrying a revision is checked against the stored
        one by the store.

        Returns:
            The point ID
        """
        point = as_point(point)
        doc = point.to_doc()
        doc["createdAt"] = _created_millis(point.created_at)

        # Only set textSearch if there's content that yields tokens
        tokens = tokenize(point.content)
        if tokens:
            doc["textSearch"] = tokens
        else:
            doc.pop("textSearch", None)

        if point.id:
            self._store.put(doc)
            point_id = point.id
        else:
            point_id = self._store.post(doc)["id"]
        logger.info("Stored point %s", point_id)
        return point_id

    def get_point(self, id: str) -> Point:
        """
        Get a stored point.

        Raises:
            NotFound: If no point has this ID
        """
        doc = self._store.get(id)
        if doc.get("type") != POINT_TYPE:
            raise NotFound(id)
        return Point.from_doc(doc)

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def add_message(
        self,
        message: Message,
        point_store: Optional[Mapping[str, PointLike]] = None,
    ) -> str:
        """
        Store a message with the full closure of points it depends on.

        Every point of the main point and the shapes must be in
        ``point_store``. Points there without a revision are persisted,
        stamped with the message's createdAt unless they have their own.
        Points cited through reference history are resolved from
        ``point_store`` or, failing that, the store.

        Points persisted before a failure are not rolled back.

        Returns:
            The message ID

        Raises:
            ValidationError: Missing main point, bad createdAt, point without ID
            PointNotFoundError: A point in the closure cannot be resolved
        """
        if not message.main:
            raise ValidationError("Message lacks main point")
        if self.author_url is None:
            raise RuntimeError("USHINBase.init() must be called before adding messages")

        created_at = (
            to_epoch_millis(message.created_at)
            if message.created_at is not None
            else now_millis()
        )
        shapes = shapes_to_doc(message.shapes)

        all_points = self._resolve_closure(
            [message.main, *message.shape_point_ids],
            point_store or {},
            created_at,
        )

        to_save: dict[str, Any] = {
            "type": MESSAGE_TYPE,
            "main": message.main,
            "responseHistory": [r.to_doc() for r in message.response_history],
            "createdAt": created_at,
            "author": self.author_url,
            "shapes": shapes,
            "allPoints": all_points,
        }
        if message.revision_of is not None:
            to_save["revisionOf"] = message.revision_of

        if message.id and message.rev:
            self._store.put({**to_save, "_id": message.id, "_rev": message.rev})
            message_id = message.id
        else:
            if message.id:
                to_save["_id"] = message.id
            message_id = self._store.post(to_save)["id"]

        logger.info("Stored message %s (%d points)", message_id, len(all_points))
        return message_id

    def _resolve_closure(
        self,
        initial: list[str],
        point_store: Mapping[str, PointLike],
        created_at: int,
    ) -> list[str]:
        """Saturate the set of point IDs reachable through reference history.

        Returns IDs in discovery order: initial IDs first, then references
        breadth-first.
        """
        closure = dict.fromkeys(initial)
        required = set(closure)
        queue = deque(closure)

        while queue:
            point_id = queue.popleft()
            point = self._closure_point(point_id, point_store, point_id in required, created_at)
            for ref_id in point.referenced_ids:
                if not ref_id:
                    raise ValidationError(f"Reference history of {point_id!r} lacks a pointId")
                if ref_id not in closure:
                    logger.debug("Closure: %s cites %s", point_id, ref_id)
                    closure[ref_id] = None
                    queue.append(ref_id)

        return list(closure)

    def _closure_point(
        self,
        point_id: str,
        point_store: Mapping[str, PointLike],
        required: bool,
        created_at: int,
    ) -> Point:
        record = point_store.get(point_id)
        if record is None:
            if required:
                raise PointNotFoundError(point_id)
            try:
                return self.get_point(point_id)
            except NotFound:
                raise PointNotFoundError(point_id) from None

        point = as_point(record)
        if not point.id:
            raise ValidationError("Must specify point ID")
        if point.rev is None:
            if point.created_at is None:
                point = replace(point, created_at=created_at)
            self.add_point(point)
        return point

    def get_message(self, id: str) -> Message:
        """
        Get a stored message with createdAt as a datetime.

        Raises:
            NotFound: If no message has this ID
        """
        doc = self._store.get(id)
        if doc.get("type") != MESSAGE_TYPE:
            raise NotFound(id)
        return Message.from_doc(doc)

    def get_points_for_message(
        self,
        message: Message,
        existing_points: Optional[Mapping[str, PointLike]] = None,
    ) -> dict[str, Point]:
        """
        Fetch every point a message depends on.

        Covers the main point, shapes, response history, and everything
        cited transitively through reference history. Points already in
        ``existing_points`` are not refetched and not returned, but their
        references are still followed.

        Raises:
            NotFound: If a cited point does not exist
        """
        existing = existing_points or {}

        direct = [message.main, *message.shape_point_ids]
        for response in message.response_history:
            direct.append(response.main_point_id)
            if response.secondary_point_id is not None:
                direct.append(response.secondary_point_id)

        seen = dict.fromkeys(direct)
        queue = deque(seen)
        points: dict[str, Point] = {}

        while queue:
            point_id = queue.popleft()
            if point_id in existing:
                point = as_point(existing[point_id])
            else:
                point = self.get_point(point_id)
                points[point_id] = point
            for ref_id in point.referenced_ids:
                if ref_id not in seen:
                    seen[ref_id] = None
                    queue.append(ref_id)

        return points

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def search_messages(
        self,
        selector: Optional[Mapping[str, Any]] = None,
        *,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        sort: Optional[list] = None,
    ) -> list[Message]:
        """
        Find messages matching a selector, newest first by default.

        The caller's ``createdAt`` condition replaces the default existence
        check, and may use datetime or date bounds; ``type`` is always
        "message".
        """
        selector = dict(selector or {})
        if "createdAt" in selector:
            selector["createdAt"] = _millis_condition(selector["createdAt"])
        final_selector = {
            "createdAt": {"$exists": True},
            **selector,
            "type": MESSAGE_TYPE,
        }
        docs = self._store.find(
            final_selector,
            sort=sort or DEFAULT_SORT,
            limit=limit if limit is not None else self.default_limit,
            skip=skip,
        )
        return [Message.from_doc(doc) for doc in docs]

    def search_messages_for_points(
        self,
        points: Iterable[Union[PointLike, str]],
        selector: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> list[Message]:
        """Find messages whose closure contains at least one of the points.

        ``selector`` adds further conditions, such as a createdAt range.
        """
        point_ids = [_point_id(p) for p in points]
        return self.search_messages(
            {**(selector or {}), "allPoints": {"$elemMatch": {"$in": point_ids}}},
            **kwargs,
        )

    def search_points_by_content(
        self,
        query: str,
        *,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        sort: Optional[list] = None,
    ) -> list[Point]:
        """Find points containing every token of the query, newest first."""
        tokens = tokenize(query)
        if not tokens:
            return []
        docs = self._store.find(
            {
                "type": POINT_TYPE,
                "textSearch": {"$all": tokens},
                "createdAt": {"$exists": True},
            },
            sort=sort or DEFAULT_SORT,
            limit=limit if limit is not None else self.default_limit,
            skip=skip,
        )
        return [Point.from_doc(doc) for doc in docs]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the store and detach the operations log."""
        if self._ops_log_handler is not None:
            logging.getLogger("ushin").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None
        self._store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
