"""Tests for record types and timestamp conversion."""

from datetime import datetime, timezone

import pytest

from ushin.errors import ValidationError
from ushin.types import (
    Message,
    Point,
    ReferenceLog,
    Shape,
    from_epoch_millis,
    shapes_from_doc,
    shapes_to_doc,
    to_epoch_millis,
)


class TestTimestamps:
    def test_round_trip(self):
        dt = datetime(2024, 2, 29, 12, 30, 15, 250000, tzinfo=timezone.utc)
        assert from_epoch_millis(to_epoch_millis(dt)) == dt

    def test_iso_offsets(self):
        assert to_epoch_millis("1970-01-01T00:00:00.500+00:00") == 500

    def test_invalid_string(self):
        with pytest.raises(ValidationError):
            to_epoch_millis("yesterday")


class TestPoint:
    def test_to_doc_omits_unset_fields(self):
        assert Point(id="a").to_doc() == {"type": "point", "_id": "a"}

    def test_from_doc_keeps_unknown_fields(self):
        doc = {"_id": "a", "_rev": "1-x", "type": "point", "content": "hi", "mood": "glad"}
        point = Point.from_doc(doc)
        assert point.rev == "1-x"
        assert point.extra == {"mood": "glad"}
        assert point.to_doc() == doc

    def test_referenced_ids(self):
        point = Point(id="a", reference_history=[ReferenceLog("b"), ReferenceLog("c")])
        assert point.referenced_ids == ["b", "c"]
        assert Point(id="a").referenced_ids == []


class TestShapes:
    def test_preserve_order(self):
        shapes = [Shape("z", ["1"]), Shape("a", ["2", "3"])]
        doc = shapes_to_doc(shapes)
        assert list(doc) == ["z", "a"]
        assert shapes_from_doc(doc) == shapes

    def test_message_shape_lookup(self):
        message = Message(main="m", shapes=[Shape("feelings", ["a"]), Shape("needs", ["b", "c"])])
        assert message.shape("needs") == ["b", "c"]
        assert message.shape("missing") == []
        assert message.shape_point_ids == ["a", "b", "c"]
