"""Tests for selector matching, collation, and sort parsing."""

from datetime import datetime, timezone

import pytest

from ushin.errors import QueryError
from ushin.selector import MISSING, collate, get_field, matches, parse_sort, sort_docs


DOC = {
    "_id": "m1",
    "type": "message",
    "createdAt": 2000,
    "allPoints": ["a", "b", "c"],
    "shapes": {"feelings": ["a"]},
    "author": "ushin://x",
}


class TestGetField:
    def test_top_level(self):
        assert get_field(DOC, "type") == "message"

    def test_nested_path(self):
        assert get_field(DOC, "shapes.feelings") == ["a"]

    def test_missing(self):
        assert get_field(DOC, "nope") is MISSING
        assert get_field(DOC, "type.nested") is MISSING


class TestCollate:
    def test_type_ordering(self):
        ordered = [None, False, True, 1, "a", ["a"], {"a": 1}]
        for lower, higher in zip(ordered, ordered[1:]):
            assert collate(lower, higher) == -1
            assert collate(higher, lower) == 1

    def test_numbers_and_strings(self):
        assert collate(1, 2.5) == -1
        assert collate("b", "a") == 1
        assert collate(3, 3) == 0

    def test_arrays_elementwise_then_length(self):
        assert collate(["a", "b"], ["a", "c"]) == -1
        assert collate(["a"], ["a", "b"]) == -1

    def test_booleans_are_not_numbers(self):
        assert collate(True, 1) == -1


class TestMatches:
    def test_empty_selector_matches_everything(self):
        assert matches(DOC, {})
        assert matches(DOC, None)

    def test_implicit_equality(self):
        assert matches(DOC, {"type": "message"})
        assert not matches(DOC, {"type": "point"})

    def test_exists(self):
        assert matches(DOC, {"createdAt": {"$exists": True}})
        assert not matches(DOC, {"textSearch": {"$exists": True}})
        assert matches(DOC, {"textSearch": {"$exists": False}})

    def test_range_operators(self):
        assert matches(DOC, {"createdAt": {"$gt": 100}})
        assert matches(DOC, {"createdAt": {"$gte": 2000, "$lte": 2000}})
        assert not matches(DOC, {"createdAt": {"$lt": 2000}})

    def test_range_on_missing_field_fails(self):
        assert not matches(DOC, {"missing": {"$gt": 0}})

    def test_ne_and_nin(self):
        assert matches(DOC, {"type": {"$ne": "point"}})
        assert matches(DOC, {"type": {"$nin": ["point", "author"]}})
        assert not matches(DOC, {"type": {"$nin": ["message"]}})

    def test_in_on_scalar_and_array(self):
        assert matches(DOC, {"type": {"$in": ["point", "message"]}})
        assert matches(DOC, {"allPoints": {"$in": ["z", "c"]}})
        assert not matches(DOC, {"allPoints": {"$in": ["z"]}})

    def test_all_is_conjunctive(self):
        assert matches(DOC, {"allPoints": {"$all": ["a", "c"]}})
        assert not matches(DOC, {"allPoints": {"$all": ["a", "z"]}})

    def test_elem_match_any_of(self):
        assert matches(DOC, {"allPoints": {"$elemMatch": {"$in": ["x", "b"]}}})
        assert not matches(DOC, {"allPoints": {"$elemMatch": {"$in": ["x", "y"]}}})

    def test_elem_match_on_objects(self):
        doc = {"responseHistory": [{"mainPointId": "a"}, {"mainPointId": "b"}]}
        assert matches(doc, {"responseHistory": {"$elemMatch": {"mainPointId": "b"}}})
        assert not matches(doc, {"responseHistory": {"$elemMatch": {"mainPointId": "c"}}})

    def test_size_and_regex(self):
        assert matches(DOC, {"allPoints": {"$size": 3}})
        assert matches(DOC, {"author": {"$regex": "^ushin://"}})

    def test_invalid_regex_raises(self):
        with pytest.raises(QueryError):
            matches(DOC, {"author": {"$regex": "(unclosed"}})
        with pytest.raises(QueryError):
            matches(DOC, {"missing": {"$regex": "["}})

    def test_non_json_operand_raises(self):
        with pytest.raises(QueryError):
            matches(DOC, {"createdAt": {"$gte": datetime(2020, 1, 1, tzinfo=timezone.utc)}})
        with pytest.raises(QueryError):
            matches(DOC, {"type": object()})

    def test_nested_selector(self):
        assert matches(DOC, {"shapes": {"feelings": ["a"]}})
        assert matches(DOC, {"shapes.feelings": {"$all": ["a"]}})

    def test_combinators(self):
        assert matches(DOC, {"$or": [{"type": "point"}, {"createdAt": 2000}]})
        assert not matches(DOC, {"$and": [{"type": "message"}, {"createdAt": 1}]})
        assert matches(DOC, {"$nor": [{"type": "point"}]})
        assert matches(DOC, {"$not": {"type": "point"}})
        assert matches(DOC, {"createdAt": {"$not": {"$lt": 100}}})

    def test_unknown_operator_raises(self):
        with pytest.raises(QueryError):
            matches(DOC, {"type": {"$like": "m%"}})

    def test_in_requires_array(self):
        with pytest.raises(QueryError):
            matches(DOC, {"type": {"$in": "message"}})


class TestSort:
    def test_parse_mixed_forms(self):
        assert parse_sort(["type", {"createdAt": "asc"}]) == (["type", "createdAt"], False)
        assert parse_sort([{"type": "desc"}, {"createdAt": "desc"}]) == (["type", "createdAt"], True)
        assert parse_sort(None) == ([], False)

    def test_mixed_directions_rejected(self):
        with pytest.raises(QueryError):
            parse_sort([{"type": "asc"}, {"createdAt": "desc"}])

    def test_invalid_direction_rejected(self):
        with pytest.raises(QueryError):
            parse_sort([{"createdAt": "sideways"}])

    def test_sort_with_id_tiebreak(self):
        docs = [
            {"_id": "one", "createdAt": 5},
            {"_id": "two", "createdAt": 5},
            {"_id": "three", "createdAt": 9},
        ]
        ids = [d["_id"] for d in sort_docs(docs, ["createdAt"], descending=True)]
        assert ids == ["three", "two", "one"]
        ids = [d["_id"] for d in sort_docs(docs, ["createdAt"])]
        assert ids == ["one", "two", "three"]
