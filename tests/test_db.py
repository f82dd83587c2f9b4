"""
Tests for the SQL-backed reference and record stores.
"""

import pytest
from sqlalchemy.exc import OperationalError

from cvparse.db import SqlRecordStore, SqlReferenceStore, get_engine, get_session_factory, init_db
from cvparse.errors import ErrorKind, PersistenceError
from cvparse.models import DocumentReference, StructuredRecord


@pytest.fixture
def factory(tmp_path):
    engine = get_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    return get_session_factory(engine)


class TestSqlReferenceStore:
    @pytest.mark.asyncio
    async def test_put_replaces_existing(self, factory):
        store = SqlReferenceStore(factory)
        await store.put(DocumentReference("u1", "https://a.test/one.pdf", "one.pdf"))
        await store.put(DocumentReference("u1", "https://a.test/two.pdf", "two.pdf"))

        assert await store.get("u1") == DocumentReference("u1", "https://a.test/two.pdf", "two.pdf")

    @pytest.mark.asyncio
    async def test_update_locator_keeps_display_name(self, factory):
        store = SqlReferenceStore(factory)
        await store.put(DocumentReference("u1", "https://a.test/one.pdf", "one.pdf"))

        await store.update_locator("u1", "https://b.test/moved.pdf")

        reference = await store.get("u1")
        assert reference.storage_locator == "https://b.test/moved.pdf"
        assert reference.display_name == "one.pdf"

    @pytest.mark.asyncio
    async def test_update_locator_without_reference(self, factory):
        with pytest.raises(LookupError):
            await SqlReferenceStore(factory).update_locator("nobody", "https://b.test/x.pdf")

    @pytest.mark.asyncio
    async def test_delete(self, factory):
        store = SqlReferenceStore(factory)
        await store.put(DocumentReference("u1", "https://a.test/one.pdf", "one.pdf"))

        assert await store.delete("u1") is True
        assert await store.delete("u1") is False
        assert await store.get("u1") is None


class TestSqlRecordStore:
    @pytest.mark.asyncio
    async def test_upsert_is_last_write_wins(self, factory):
        store = SqlRecordStore(factory)
        await store.upsert("u1", StructuredRecord(skills="Python - Expert"))
        await store.upsert("u1", StructuredRecord(skills="Go - Good"))

        record = await store.get("u1")
        assert record.skills == "Go - Good"
        assert record.education == "No information available"

    @pytest.mark.asyncio
    async def test_get_missing(self, factory):
        assert await SqlRecordStore(factory).get("u1") is None

    @pytest.mark.asyncio
    async def test_failed_upsert_keeps_previous_row(self, factory, monkeypatch):
        store = SqlRecordStore(factory)
        await store.upsert("u1", StructuredRecord(skills="Python - Expert"))

        def broken_commit(self):
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr("sqlalchemy.orm.Session.commit", broken_commit)
        with pytest.raises(PersistenceError) as exc:
            await store.upsert("u1", StructuredRecord(skills="Go - Good"))
        monkeypatch.undo()

        assert exc.value.kind is ErrorKind.PERSISTENCE
        assert (await store.get("u1")).skills == "Python - Expert"
