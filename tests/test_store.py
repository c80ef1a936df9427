"""Tests for the in-memory and SQLite feature stores."""

from datetime import datetime, timedelta, timezone

import pytest

from cbir.errors import RecordFormatError
from cbir.models import FeatureRecord
from cbir.store import InMemoryStore, SQLiteStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record(ref, phash="00000000000000ff", offset=0):
    return FeatureRecord(
        id=f"id-{ref}", media_ref=ref, phash=phash,
        color_histogram=b"\x01\x02", edge_features=b"\x03",
        created_at=T0, updated_at=T0 + timedelta(seconds=offset),
    )


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStore()
    else:
        store = SQLiteStore(tmp_path / "index" / "features.sqlite3")
        yield store
        store.close()


class TestStore:

    def test_get_missing_returns_none(self, any_store):
        assert any_store.get("nope") is None

    def test_upsert_and_get(self, any_store):
        any_store.upsert(_record("a"))
        assert any_store.get("a") == _record("a")

    def test_upsert_replaces(self, any_store):
        any_store.upsert(_record("a"))
        any_store.upsert(_record("a", phash="0000000000000001", offset=5))
        stored = any_store.get("a")
        assert stored.phash == "0000000000000001"
        assert stored.updated_at == T0 + timedelta(seconds=5)
        assert len(list(any_store.iterate())) == 1

    def test_delete_is_idempotent(self, any_store):
        any_store.upsert(_record("a"))
        any_store.delete("a")
        any_store.delete("a")
        assert any_store.get("a") is None

    def test_iterate(self, any_store):
        for ref in ("a", "b", "c"):
            any_store.upsert(_record(ref))
        assert sorted(r.media_ref for r in any_store.iterate()) == ["a", "b", "c"]

    def test_iterate_is_snapshot(self, any_store):
        any_store.upsert(_record("a"))
        any_store.upsert(_record("b"))
        records = any_store.iterate()
        first = next(records)
        any_store.delete("b" if first.media_ref == "a" else "a")
        assert len([first] + list(records)) == 2


class TestInMemoryStore:

    def test_len_tracks_upserts_and_deletes(self):
        store = InMemoryStore()
        assert len(store) == 0
        store.upsert(_record("a"))
        store.upsert(_record("b"))
        store.upsert(_record("a", offset=1))
        assert len(store) == 2
        store.delete("a")
        assert len(store) == 1


class TestSQLiteStore:

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "features.sqlite3"
        store = SQLiteStore(path)
        store.upsert(_record("a"))
        store.close()

        reopened = SQLiteStore(path)
        assert reopened.get("a") == _record("a")
        reopened.close()

    def test_unreadable_row_skipped_by_iterate(self, caplog):
        store = SQLiteStore()
        store.upsert(_record("good"))
        store.upsert(_record("bad"))
        store._conn.execute(
            "UPDATE feature_records SET created_at = 'garbage' WHERE media_ref = 'bad'"
        )
        store._conn.commit()

        assert [r.media_ref for r in store.iterate()] == ["good"]
        assert "Skipping row 'bad'" in caplog.text
        with pytest.raises(RecordFormatError):
            store.get("bad")
        store.close()
