"""Tests for the SQLite persistence engine."""

import pytest

from corpus_sync import Settings, SqliteEngine
from corpus_sync.engine import SCHEMA_VERSION, check_schema_version, connect, init_db
from corpus_sync.exceptions import (
    DuplicateRecordError,
    EngineUnavailableError,
    StorageCorruptionError,
)


@pytest.fixture
def store():
    eng = SqliteEngine()
    yield eng
    eng.close()


class TestSchema:

    def test_init_sets_version(self):
        conn = connect()
        init_db(conn)
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
        assert row[0] == SCHEMA_VERSION
        conn.close()

    def test_incompatible_version_rejected(self):
        conn = connect()
        init_db(conn)
        conn.execute("UPDATE meta SET value = '0.1' WHERE key = 'schema_version'")
        with pytest.raises(EngineUnavailableError):
            check_schema_version(conn)
        conn.close()

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self, store):
        await store.open()
        await store.open()
        assert store.is_open
        store.close()
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_file_database_persists(self, tmp_path):
        path = tmp_path / "corpus.db"
        first = SqliteEngine(path)
        await first.add("words", {"id": "w1", "english": "car"})
        first.close()

        second = SqliteEngine(path)
        assert await second.get_by_id("words", "w1") == {"id": "w1", "english": "car"}
        second.close()

    @pytest.mark.asyncio
    async def test_from_settings(self, tmp_path):
        settings = Settings(database_path=str(tmp_path / "c.db"))
        first = SqliteEngine.from_settings(settings)
        await first.add("words", {"id": "w1", "english": "car"})
        first.close()

        second = SqliteEngine.from_settings(settings)
        assert await second.count("words") == 1
        second.close()


class TestCrud:

    @pytest.mark.asyncio
    async def test_add_and_get(self, store):
        await store.add("words", {"id": "w1", "english": "car", "french": ["voiture"]})
        assert await store.get_by_id("words", "w1") == {
            "id": "w1", "english": "car", "french": ["voiture"],
        }
        assert await store.get_by_id("words", "missing") is None

    @pytest.mark.asyncio
    async def test_get_all_keeps_insertion_order(self, store):
        for record_id in ("b", "a", "c"):
            await store.add("sentences", {"id": record_id})
        assert [r["id"] for r in await store.get_all("sentences")] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_collections_are_separate(self, store):
        await store.add("words", {"id": "x"})
        await store.add("numbers", {"id": "x"})
        assert await store.count("words") == 1
        assert await store.count("numbers") == 1
        assert await store.get_all("verbs") == []

    @pytest.mark.asyncio
    async def test_add_duplicate_raises(self, store):
        await store.add("words", {"id": "w1"})
        with pytest.raises(DuplicateRecordError):
            await store.add("words", {"id": "w1"})

    @pytest.mark.asyncio
    async def test_update_is_upsert(self, store):
        await store.update("rotationState", {"id": "guest:words", "seenIds": []})
        await store.update("rotationState", {"id": "guest:words", "seenIds": ["w1"]})
        records = await store.get_all("rotationState")
        assert records == [{"id": "guest:words", "seenIds": ["w1"]}]

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        await store.bulk_add("words", [{"id": "a"}, {"id": "b"}, {"id": "c"}])
        await store.delete("words", "b")
        await store.delete("words", "missing")
        assert [r["id"] for r in await store.get_all("words")] == ["a", "c"]
        await store.clear("words")
        assert await store.count("words") == 0

    @pytest.mark.asyncio
    async def test_bulk_add_is_atomic(self, store):
        await store.add("words", {"id": "b"})
        with pytest.raises(DuplicateRecordError):
            await store.bulk_add("words", [{"id": "a"}, {"id": "b"}])
        assert [r["id"] for r in await store.get_all("words")] == ["b"]

    @pytest.mark.asyncio
    async def test_bulk_add_returns_count(self, store):
        assert await store.bulk_add("verbs", [{"id": "v1"}, {"id": "v2"}]) == 2


class TestErrors:

    @pytest.mark.asyncio
    async def test_unknown_collection(self, store):
        with pytest.raises(ValueError, match="Unknown collection"):
            await store.get_all("animals")

    @pytest.mark.asyncio
    async def test_record_needs_id(self, store):
        with pytest.raises(ValueError):
            await store.add("words", {"english": "car"})

    @pytest.mark.asyncio
    async def test_corrupt_record(self, store):
        await store.open()
        store._conn.execute(
            "INSERT INTO records (collection, id, data) VALUES ('words', 'bad', '{oops')"
        )
        with pytest.raises(StorageCorruptionError):
            await store.get_all("words")

    @pytest.mark.asyncio
    async def test_non_mapping_record(self, store):
        await store.open()
        store._conn.execute(
            "INSERT INTO records (collection, id, data) VALUES ('words', 'bad', '[1, 2]')"
        )
        with pytest.raises(StorageCorruptionError):
            await store.get_by_id("words", "bad")

    @pytest.mark.asyncio
    async def test_unopenable_path(self, tmp_path):
        eng = SqliteEngine(tmp_path / "missing-dir" / "corpus.db")
        with pytest.raises(EngineUnavailableError):
            await eng.open()
