"""Database session management and SQL-backed stores.

All data stored locally in ~/.cvparse/data.db unless a database URL is
configured.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import PersistenceError
from .models import Base, CVDocument, DocumentReference, ParsedCV, StructuredRecord
from .storage.base import RecordStore, ReferenceStore


logger = logging.getLogger(__name__)


def get_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, echo=False, connect_args=connect_args)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a database session with automatic commit/rollback."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(engine)


class SqlReferenceStore(ReferenceStore):
    """DocumentReferences in the ``cv_documents`` table."""

    def __init__(self, factory: sessionmaker):
        self.factory = factory

    async def get(self, owner_id: str) -> DocumentReference | None:
        def _get():
            with session_scope(self.factory) as session:
                row = session.get(CVDocument, owner_id)
                return row.to_reference() if row else None

        return await asyncio.to_thread(_get)

    async def put(self, reference: DocumentReference) -> None:
        def _put():
            with session_scope(self.factory) as session:
                row = session.get(CVDocument, reference.owner_id)
                if row is None:
                    row = CVDocument(owner_id=reference.owner_id)
                    session.add(row)
                row.file_url = reference.storage_locator
                row.file_name = reference.display_name
                row.updated_at = datetime.utcnow()

        await asyncio.to_thread(_put)

    async def update_locator(self, owner_id: str, storage_locator: str) -> None:
        def _update():
            with session_scope(self.factory) as session:
                row = session.get(CVDocument, owner_id)
                if row is None:
                    raise LookupError(f"No document reference for owner {owner_id}")
                row.file_url = storage_locator
                row.updated_at = datetime.utcnow()

        await asyncio.to_thread(_update)

    async def delete(self, owner_id: str) -> bool:
        def _delete():
            with session_scope(self.factory) as session:
                row = session.get(CVDocument, owner_id)
                if row is None:
                    return False
                session.delete(row)
                return True

        return await asyncio.to_thread(_delete)


class SqlRecordStore(RecordStore):
    """StructuredRecords in the ``cv_parsed_data`` table.

    The upsert runs in one transaction; on failure it is rolled back and the
    previous row stays as it was.
    """

    def __init__(self, factory: sessionmaker):
        self.factory = factory

    async def upsert(self, owner_id: str, record: StructuredRecord) -> None:
        def _upsert():
            with session_scope(self.factory) as session:
                row = session.get(ParsedCV, owner_id)
                if row is None:
                    row = ParsedCV(owner_id=owner_id)
                    session.add(row)
                for name, value in record.to_dict().items():
                    setattr(row, name, value)
                row.updated_at = datetime.utcnow()

        try:
            await asyncio.to_thread(_upsert)
        except SQLAlchemyError as e:
            logger.error("Failed to store parsed CV for %s: %s", owner_id, e)
            raise PersistenceError(
                f"Failed to store parsed CV for owner {owner_id}",
                {"error": str(e)},
            ) from e

    async def get(self, owner_id: str) -> StructuredRecord | None:
        def _get():
            with session_scope(self.factory) as session:
                row = session.get(ParsedCV, owner_id)
                return row.to_record() if row else None

        return await asyncio.to_thread(_get)
