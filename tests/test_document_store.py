"""Tests for the SQLite document store."""

import pytest

from ushin.document_store import DocumentStore
from ushin.errors import ConflictError, NotFound, QueryError, ValidationError
from ushin.protocol import DocumentStoreProtocol


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(tmp_path / "documents.db")
    yield s
    s.close()


class TestWrites:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStoreProtocol)

    def test_put_and_get(self, store):
        result = store.put({"_id": "a", "type": "point", "content": "hi"})
        assert result["id"] == "a"
        assert result["rev"].startswith("1-")

        doc = store.get("a")
        assert doc["_id"] == "a"
        assert doc["_rev"] == result["rev"]
        assert doc["content"] == "hi"

    def test_put_requires_id(self, store):
        with pytest.raises(ValidationError):
            store.put({"type": "point"})

    def test_put_with_current_rev_bumps_generation(self, store):
        first = store.put({"_id": "a", "n": 1})
        second = store.put({"_id": "a", "_rev": first["rev"], "n": 2})
        assert second["rev"].startswith("2-")
        assert store.get("a")["n"] == 2

    def test_put_with_stale_rev_conflicts(self, store):
        first = store.put({"_id": "a", "n": 1})
        store.put({"_id": "a", "_rev": first["rev"], "n": 2})
        with pytest.raises(ConflictError):
            store.put({"_id": "a", "_rev": first["rev"], "n": 3})

    def test_put_with_rev_for_missing_doc_conflicts(self, store):
        with pytest.raises(ConflictError):
            store.put({"_id": "ghost", "_rev": "1-abc"})

    def test_put_without_rev_overwrites(self, store):
        store.put({"_id": "a", "n": 1})
        store.put({"_id": "a", "n": 2})
        assert store.get("a")["n"] == 2

    def test_post_generates_id(self, store):
        result = store.post({"type": "message"})
        assert result["id"]
        assert store.get(result["id"])["type"] == "message"

    def test_post_existing_id_conflicts(self, store):
        store.post({"_id": "a"})
        with pytest.raises(ConflictError):
            store.post({"_id": "a"})

    def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFound) as exc:
            store.get("nope")
        assert exc.value.doc_id == "nope"

    def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "documents.db"
        with DocumentStore(path) as s:
            s.put({"_id": "a", "n": 1})
            s.create_index(["type"])
            url = s.get_url()
        with DocumentStore(path) as s:
            assert s.get("a")["n"] == 1
            assert s.list_indexes() == [["type"]]
            assert s.get_url() == url


class TestIndexes:
    def test_create_index_reports_existing(self, store):
        assert store.create_index(["type", "createdAt"]) == "created"
        assert store.create_index(["type", "createdAt"]) == "exists"

    def test_declarations_persist_without_sql_indexes(self, tmp_path):
        path = tmp_path / "documents.db"
        with DocumentStore(path) as s:
            s.create_index(["type", "createdAt"])
            names = {row[0] for row in s._conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND sql IS NOT NULL"
            )}
            assert names == {"idx_documents_type"}

        with DocumentStore(path) as s:
            assert s.list_indexes() == [["type", "createdAt"]]
            assert s.create_index(["type", "createdAt"]) == "exists"

    def test_rejects_unsafe_field_names(self, store):
        with pytest.raises(QueryError):
            store.create_index(["type); DROP TABLE documents; --"])

    def test_rejects_empty_index(self, store):
        with pytest.raises(QueryError):
            store.create_index([])


class TestFind:
    @pytest.fixture
    def populated(self, store):
        store.create_index(["type", "createdAt"])
        store.put({"_id": "p1", "type": "point", "createdAt": 10, "textSearch": ["a", "b"]})
        store.put({"_id": "p2", "type": "point", "createdAt": 30, "textSearch": ["b"]})
        store.put({"_id": "p3", "type": "point", "createdAt": 20})
        store.put({"_id": "m1", "type": "message", "createdAt": 40})
        store.put({"_id": "author"})
        return store

    def test_filters_by_type(self, populated):
        ids = {d["_id"] for d in populated.find({"type": "point"})}
        assert ids == {"p1", "p2", "p3"}

    def test_selector_without_type_scans_all(self, populated):
        ids = {d["_id"] for d in populated.find({"createdAt": {"$gte": 30}})}
        assert ids == {"p2", "m1"}

    def test_sort_desc_with_limit_and_skip(self, populated):
        sort = [{"type": "desc"}, {"createdAt": "desc"}]
        docs = populated.find({"type": "point"}, sort=sort)
        assert [d["_id"] for d in docs] == ["p2", "p3", "p1"]

        docs = populated.find({"type": "point"}, sort=sort, limit=1, skip=1)
        assert [d["_id"] for d in docs] == ["p3"]

    def test_sort_requires_covering_index(self, populated):
        with pytest.raises(QueryError):
            populated.find({"type": "point"}, sort=[{"textSearch": "asc"}])

    def test_sort_on_index_prefix_allowed(self, populated):
        docs = populated.find({"type": "message"}, sort=["type"])
        assert [d["_id"] for d in docs] == ["m1"]

    def test_all_operator(self, populated):
        docs = populated.find({"type": "point", "textSearch": {"$all": ["a", "b"]}})
        assert [d["_id"] for d in docs] == ["p1"]
