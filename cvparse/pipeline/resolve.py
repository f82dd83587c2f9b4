"""Resolve a DocumentReference into the document's bytes.

Resolution order:
1. Signed read URL for the reference's bucket/path
2. Direct fetch of the stored locator (external or stale links)

A successful direct fetch re-uploads the bytes to the canonical bucket and
repoints the reference there, so the next resolution takes path 1.
"""

from __future__ import annotations

import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse
from uuid import uuid4

import httpx

from ..errors import ErrorKind, FileAccessError, StorageError
from ..models import DocumentReference
from ..storage.base import BlobStore, ReferenceStore


logger = logging.getLogger(__name__)

_OBJECT_PREFIX = ("storage", "v1", "object")
_ACCESS_SEGMENTS = {"public", "sign", "authenticated"}
_UNSAFE_NAME = re.compile(r"[\s()]")


@dataclass
class ResolvedDocument:
    """Bytes of a document and where they were read from."""

    content: bytes
    url: str
    reference: DocumentReference
    healed: bool = False


def parse_locator(locator: str, default_bucket: str) -> tuple[str, str]:
    """Split a storage locator into (bucket, path).

    Storage URLs (``/storage/v1/object/<access>/<bucket>/<path>``) name their
    bucket; any other http(s) URL maps into ``default_bucket`` by its path.
    """
    try:
        parsed = urlparse(locator.strip())
    except ValueError as e:
        raise FileAccessError(
            f"Not a file URL: {locator!r}",
            reason=ErrorKind.MALFORMED_REFERENCE,
        ) from e
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise FileAccessError(
            f"Not a file URL: {locator!r}",
            reason=ErrorKind.MALFORMED_REFERENCE,
        )

    parts = [unquote(p) for p in parsed.path.split("/") if p]
    if tuple(parts[:3]) == _OBJECT_PREFIX:
        parts = parts[3:]
        if parts and parts[0] in _ACCESS_SEGMENTS:
            parts = parts[1:]
        if len(parts) < 2:
            raise FileAccessError(
                f"Storage URL has no bucket and path: {locator!r}",
                reason=ErrorKind.MALFORMED_REFERENCE,
            )
        return parts[0], "/".join(parts[1:])

    if not parts:
        raise FileAccessError(
            f"File URL has no path: {locator!r}",
            reason=ErrorKind.MALFORMED_REFERENCE,
        )
    return default_bucket, "/".join(parts)


def canonical_path(owner_id: str, file_name: str) -> str:
    """Fresh, owner-scoped object path for a re-uploaded file."""
    safe_name = _UNSAFE_NAME.sub("_", PurePosixPath(file_name).name) or "document"
    return f"{owner_id}/{int(time.time() * 1000)}_{uuid4().hex[:8]}_{safe_name}"


class FileAccessResolver:
    """Obtain document bytes, repairing broken references on the way."""

    def __init__(
        self,
        blob_store: BlobStore,
        references: ReferenceStore,
        http_client: httpx.AsyncClient,
        canonical_bucket: str = "cvs",
        signed_url_ttl: int = 3600,
    ):
        self.blob_store = blob_store
        self.references = references
        self.http = http_client
        self.canonical_bucket = canonical_bucket
        self.signed_url_ttl = signed_url_ttl

    async def resolve(self, reference: DocumentReference) -> ResolvedDocument:
        bucket, path = parse_locator(reference.storage_locator, self.canonical_bucket)

        try:
            signed_url = await self.blob_store.get_signed_read_url(
                bucket, path, self.signed_url_ttl
            )
            content = await self._fetch(signed_url)
            return ResolvedDocument(content=content, url=signed_url, reference=reference)
        except (StorageError, httpx.HTTPError) as e:
            logger.warning(
                "Signed read of %s/%s failed (%s), trying the stored link directly",
                bucket, path, e,
            )

        try:
            content = await self._fetch(reference.storage_locator)
        except httpx.HTTPError as e:
            raise FileAccessError(
                f"Could not access {reference.storage_locator}: {e}",
                reason=ErrorKind.UNREACHABLE,
                details={"owner_id": reference.owner_id},
            ) from e

        return await self._heal(reference, content)

    async def _fetch(self, url: str) -> bytes:
        response = await self.http.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content

    async def _heal(self, reference: DocumentReference, content: bytes) -> ResolvedDocument:
        """Copy fetched bytes into the canonical bucket and repoint the reference."""
        new_path = canonical_path(reference.owner_id, reference.display_name)
        content_type = mimetypes.guess_type(reference.display_name)[0] or "application/octet-stream"
        try:
            await self.blob_store.upload(self.canonical_bucket, new_path, content, content_type)
        except StorageError as e:
            raise FileAccessError(
                f"Fetched {reference.storage_locator} but could not re-upload it: {e}",
                reason=ErrorKind.UNREACHABLE,
                details={"owner_id": reference.owner_id},
            ) from e

        new_locator = self.blob_store.get_public_url(self.canonical_bucket, new_path)
        healed = DocumentReference(
            owner_id=reference.owner_id,
            storage_locator=new_locator,
            display_name=reference.display_name,
        )
        try:
            await self.references.update_locator(reference.owner_id, new_locator)
            logger.info("Moved CV of %s to %s/%s", reference.owner_id, self.canonical_bucket, new_path)
        except Exception as e:
            # The bytes are still good; the reference is repaired on a later run.
            logger.error("Could not update document reference for %s: %s", reference.owner_id, e)

        return ResolvedDocument(content=content, url=new_locator, reference=healed, healed=True)
