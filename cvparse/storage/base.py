"""Collaborator interfaces the ingestion pipeline depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import DocumentReference, StructuredRecord


class BlobStore(ABC):
    """Abstract file storage addressed by opaque bucket/path strings.

    All methods raise ``StorageError`` on failure.
    """

    @abstractmethod
    async def get_signed_read_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        """Return a short-lived URL that grants read access to one object."""
        ...

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        """Store ``data`` at bucket/path, replacing any existing object."""
        ...

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        """Return the stable URL of an object. Does not check it exists."""
        ...

    @abstractmethod
    async def remove(self, bucket: str, path: str) -> None:
        """Delete an object. Missing objects are not an error."""
        ...


class ReferenceStore(ABC):
    """Holds the one active DocumentReference per owner."""

    @abstractmethod
    async def get(self, owner_id: str) -> DocumentReference | None:
        ...

    @abstractmethod
    async def put(self, reference: DocumentReference) -> None:
        """Create or replace the owner's reference."""
        ...

    @abstractmethod
    async def update_locator(self, owner_id: str, storage_locator: str) -> None:
        """Point an existing reference at a new storage location."""
        ...

    @abstractmethod
    async def delete(self, owner_id: str) -> bool:
        """Remove the reference. Returns False if there was none."""
        ...


class RecordStore(ABC):
    """Single-row-per-owner store of StructuredRecords, last write wins.

    ``upsert`` raises ``PersistenceError`` and leaves any prior row intact
    when the write fails.
    """

    @abstractmethod
    async def upsert(self, owner_id: str, record: StructuredRecord) -> None:
        ...

    @abstractmethod
    async def get(self, owner_id: str) -> StructuredRecord | None:
        ...
