"""
Mango-style selector matching and collation for JSON documents.

Supports implicit equality, nested field paths (``a.b``), and the operators
``$eq $ne $gt $gte $lt $lte $exists $in $nin $all $elemMatch $size $regex
$not`` on fields plus ``$and $or $nor $not`` as combinators.

Ordering follows CouchDB collation:
null < false < true < numbers < strings < arrays < objects.
"""

import re
from functools import cmp_to_key
from typing import Any, Optional

from .errors import QueryError


class _Missing:
    """Marker for a field absent from the document."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()

_COMBINATORS = frozenset({"$and", "$or", "$nor", "$not"})


def get_field(doc: Any, path: str) -> Any:
    """Resolve a dotted field path, returning MISSING when any segment is absent."""
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return MISSING
        value = value[part]
    return value


# ---------------------------------------------------------------------------
# Collation
# ---------------------------------------------------------------------------

def _type_rank(value: Any) -> int:
    if value is MISSING:
        return -1
    if value is None:
        return 0
    if value is False:
        return 1
    if value is True:
        return 2
    if isinstance(value, (int, float)):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, (list, tuple)):
        return 5
    if isinstance(value, dict):
        return 6
    raise QueryError(f"Not a JSON value: {type(value).__name__}")


def collate(a: Any, b: Any) -> int:
    """Three-way compare of two JSON values. Returns -1, 0, or 1.

    Raises:
        QueryError: If either value is not JSON (e.g. a datetime)
    """
    ra, rb = _type_rank(a), _type_rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra in (3, 4):
        return (a > b) - (a < b)
    if ra == 5:
        for x, y in zip(a, b):
            c = collate(x, y)
            if c:
                return c
        return (len(a) > len(b)) - (len(a) < len(b))
    if ra == 6:
        return collate(list(a.items()), list(b.items()))
    return 0


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def _is_operator_dict(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def _expect_list(op: str, arg: Any) -> list:
    if not isinstance(arg, list):
        raise QueryError(f"{op} requires an array argument, got {type(arg).__name__}")
    return arg


def _equals(value: Any, arg: Any) -> bool:
    return value is not MISSING and collate(value, arg) == 0


def _in(value: Any, args: list) -> bool:
    if isinstance(value, list):
        return any(_equals(v, a) for v in value for a in args)
    return any(_equals(value, a) for a in args)


def _apply_operator(op: str, arg: Any, value: Any) -> bool:
    if op == "$exists":
        return (value is not MISSING) == bool(arg)
    if op == "$not":
        return not match_condition(value, arg)
    if value is MISSING:
        return False
    if op == "$eq":
        return _equals(value, arg)
    if op == "$ne":
        return not _equals(value, arg)
    if op == "$gt":
        return collate(value, arg) > 0
    if op == "$gte":
        return collate(value, arg) >= 0
    if op == "$lt":
        return collate(value, arg) < 0
    if op == "$lte":
        return collate(value, arg) <= 0
    if op == "$in":
        return _in(value, _expect_list(op, arg))
    if op == "$nin":
        return not _in(value, _expect_list(op, arg))
    if op == "$all":
        args = _expect_list(op, arg)
        return isinstance(value, list) and all(any(_equals(v, a) for v in value) for a in args)
    if op == "$elemMatch":
        return isinstance(value, list) and any(match_condition(v, arg) for v in value)
    if op == "$size":
        return isinstance(value, list) and len(value) == arg
    if op == "$regex":
        if not isinstance(arg, str):
            raise QueryError("$regex requires a string pattern")
        try:
            pattern = re.compile(arg)
        except re.error as e:
            raise QueryError(f"Invalid $regex pattern {arg!r}: {e}") from e
        return isinstance(value, str) and pattern.search(value) is not None
    raise QueryError(f"Unsupported selector operator: {op}")


def match_condition(value: Any, cond: Any) -> bool:
    """Match one field value against its condition.

    A condition is an operator dict (``{"$gt": 3}``), a nested field selector
    (``{"name": "x"}``), or a literal meaning equality.
    """
    if _is_operator_dict(cond):
        for op, arg in cond.items():
            if not _apply_operator(op, arg, value):
                return False
        return True
    if isinstance(cond, dict):
        return isinstance(value, dict) and matches(value, cond)
    return _equals(value, cond)


def matches(doc: dict, selector: Optional[dict]) -> bool:
    """True if the document satisfies every clause of the selector."""
    if not selector:
        return True
    if not isinstance(selector, dict):
        raise QueryError(f"Selector must be an object, got {type(selector).__name__}")
    for key, cond in selector.items():
        if key == "$and":
            if not all(matches(doc, s) for s in _expect_list(key, cond)):
                return False
        elif key == "$or":
            if not any(matches(doc, s) for s in _expect_list(key, cond)):
                return False
        elif key == "$nor":
            if any(matches(doc, s) for s in _expect_list(key, cond)):
                return False
        elif key == "$not":
            if matches(doc, cond):
                return False
        elif key.startswith("$"):
            raise QueryError(f"Unsupported combinator: {key}")
        elif not match_condition(get_field(doc, key), cond):
            return False
    return True


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def parse_sort(sort: Optional[list]) -> tuple[list[str], bool]:
    """Normalize a sort spec to (fields, descending).

    Entries are field names (ascending) or ``{field: "asc"|"desc"}``.
    All entries must share one direction.
    """
    fields: list[str] = []
    directions: set[str] = set()
    for entry in sort or []:
        if isinstance(entry, str):
            fields.append(entry)
            directions.add("asc")
        elif isinstance(entry, dict) and len(entry) == 1:
            (name, direction), = entry.items()
            direction = str(direction).lower()
            if direction not in ("asc", "desc"):
                raise QueryError(f"Invalid sort direction for {name!r}: {direction!r}")
            fields.append(name)
            directions.add(direction)
        else:
            raise QueryError(f"Invalid sort entry: {entry!r}")
    if len(directions) > 1:
        raise QueryError("Sort fields must all use the same direction")
    return fields, directions == {"desc"}


def sort_docs(docs: list[dict], fields: list[str], descending: bool = False) -> list[dict]:
    """Sort documents by the given fields, ties broken by ``_id``."""
    def key(doc: dict) -> list:
        return [get_field(doc, f) for f in fields] + [doc.get("_id")]

    def compare(a: dict, b: dict) -> int:
        for x, y in zip(key(a), key(b)):
            c = collate(x, y)
            if c:
                return c
        return 0

    return sorted(docs, key=cmp_to_key(compare), reverse=descending)
