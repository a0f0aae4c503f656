"""
Data types for the message/point graph.

Stored documents keep their wire field names (``_id``, ``createdAt``,
``referenceHistory``...) so caller selectors can address them directly.
The dataclasses here are the typed Python view of those documents.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

from .errors import ValidationError


POINT_TYPE = "point"
MESSAGE_TYPE = "message"

# Well-known ID of the singleton author record
AUTHOR_KEY = "author"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

DateLike = Union[datetime, date, str]


def now_millis() -> int:
    """Current UTC time as epoch milliseconds."""
    return to_epoch_millis(datetime.now(timezone.utc))


def to_epoch_millis(value: Any) -> int:
    """Normalize a date-like value or ISO-8601 string to epoch milliseconds.

    Naive datetimes are taken as UTC. A bare ``date`` means midnight UTC.
    """
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"createdAt is not a valid ISO timestamp: {value!r}") from None
        return to_epoch_millis(parsed)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - _EPOCH) // _ONE_MS
    if isinstance(value, date):
        return to_epoch_millis(datetime(value.year, value.month, value.day))
    raise ValidationError(
        f"createdAt is neither a date nor an ISO string: {type(value).__name__}"
    )


def from_epoch_millis(millis: int) -> datetime:
    """Rehydrate stored epoch milliseconds to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=millis)


@dataclass
class ReferenceLog:
    """An entry in a point's reference history: a prior point it cites."""
    point_id: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_doc(self) -> dict[str, Any]:
        return {**self.extra, "pointId": self.point_id}

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "ReferenceLog":
        extra = {k: v for k, v in doc.items() if k != "pointId"}
        return cls(point_id=doc.get("pointId"), extra=extra)


_POINT_FIELDS = frozenset({
    "_id", "_rev", "type", "content", "createdAt", "textSearch", "referenceHistory",
})


@dataclass
class Point:
    """
    An atomic, addressable unit of content.

    Attributes:
        id: Document ID; None until the store assigns one
        content: Text of the point
        created_at: Epoch milliseconds
        reference_history: Prior points this point supersedes or cites
        text_search: Search tokens of ``content`` (computed on write)
        rev: Store revision marker; None for points never persisted
        extra: Caller fields without a dedicated attribute, stored verbatim
    """
    id: Optional[str] = None
    content: Optional[str] = None
    created_at: Optional[int] = None
    reference_history: Optional[list[ReferenceLog]] = None
    text_search: Optional[list[str]] = None
    rev: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def referenced_ids(self) -> list[str]:
        """Point IDs cited by the reference history, in log order."""
        return [log.point_id for log in self.reference_history or []]

    def to_doc(self) -> dict[str, Any]:
        """Serialize to the stored document shape (unset fields omitted)."""
        doc: dict[str, Any] = dict(self.extra)
        doc["type"] = POINT_TYPE
        for key, value in (
            ("_id", self.id),
            ("_rev", self.rev),
            ("content", self.content),
            ("createdAt", self.created_at),
            ("textSearch", self.text_search),
        ):
            if value is not None:
                doc[key] = value
        if self.reference_history is not None:
            doc["referenceHistory"] = [log.to_doc() for log in self.reference_history]
        return doc

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Point":
        history = doc.get("referenceHistory")
        return cls(
            id=doc.get("_id"),
            content=doc.get("content"),
            created_at=doc.get("createdAt"),
            reference_history=(
                [ReferenceLog.from_doc(log) for log in history] if history is not None else None
            ),
            text_search=doc.get("textSearch"),
            rev=doc.get("_rev"),
            extra={k: v for k, v in doc.items() if k not in _POINT_FIELDS},
        )


def as_point(value: Union[Point, Mapping[str, Any]]) -> Point:
    """Accept either a Point or a wire-shaped mapping."""
    if isinstance(value, Point):
        return value
    return Point.from_doc(value)


@dataclass
class Shape:
    """A named grouping of point IDs under one semantic facet (e.g. "feelings")."""
    name: str
    point_ids: list[str] = field(default_factory=list)


@dataclass
class ResponseLog:
    """A point this message responds to."""
    main_point_id: str
    secondary_point_id: Optional[str] = None

    def to_doc(self) -> dict[str, Any]:
        doc = {"mainPointId": self.main_point_id}
        if self.secondary_point_id is not None:
            doc["secondaryPointId"] = self.secondary_point_id
        return doc

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "ResponseLog":
        return cls(
            main_point_id=doc.get("mainPointId"),
            secondary_point_id=doc.get("secondaryPointId"),
        )


def shapes_to_doc(shapes: list[Shape]) -> dict[str, list[str]]:
    """Serialize shapes to an insertion-ordered name → IDs mapping."""
    doc: dict[str, list[str]] = {}
    for shape in shapes:
        if shape.name in doc:
            raise ValidationError(f"Duplicate shape name: {shape.name!r}")
        doc[shape.name] = list(shape.point_ids)
    return doc


def shapes_from_doc(doc: Optional[Mapping[str, list[str]]]) -> list[Shape]:
    return [Shape(name, list(ids)) for name, ids in (doc or {}).items()]


@dataclass
class Message:
    """
    A composite assertion referencing one main point and grouped secondary points.

    On input ``created_at`` may be a datetime, date, ISO string, or None
    (meaning now). Messages read from the store carry an aware UTC datetime.
    ``author`` and ``all_points`` are computed on write and ignored on input.
    """
    main: Optional[str] = None
    shapes: list[Shape] = field(default_factory=list)
    response_history: list[ResponseLog] = field(default_factory=list)
    created_at: Optional[DateLike] = None
    id: Optional[str] = None
    rev: Optional[str] = None
    revision_of: Optional[str] = None
    author: Optional[str] = None
    all_points: list[str] = field(default_factory=list)

    def shape(self, name: str) -> list[str]:
        """Point IDs of the named shape (empty if absent)."""
        for s in self.shapes:
            if s.name == name:
                return s.point_ids
        return []

    @property
    def shape_point_ids(self) -> list[str]:
        return [pid for s in self.shapes for pid in s.point_ids]

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "Message":
        created = doc.get("createdAt")
        return cls(
            main=doc.get("main"),
            shapes=shapes_from_doc(doc.get("shapes")),
            response_history=[ResponseLog.from_doc(r) for r in doc.get("responseHistory") or []],
            created_at=from_epoch_millis(created) if created is not None else None,
            id=doc.get("_id"),
            rev=doc.get("_rev"),
            revision_of=doc.get("revisionOf"),
            author=doc.get("author"),
            all_points=list(doc.get("allPoints") or []),
        )


@dataclass
class AuthorInfo:
    """Local author metadata (name, etc.) from the singleton author record."""
    fields: dict[str, Any] = field(default_factory=dict)
    rev: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        return self.fields.get("name")

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    @classmethod
    def from_doc(cls, doc: Mapping[str, Any]) -> "AuthorInfo":
        return cls(
            fields={k: v for k, v in doc.items() if k not in ("_id", "_rev")},
            rev=doc.get("_rev"),
        )
