"""Upload, link and delete the active CV document of an owner."""

from __future__ import annotations

import logging
import mimetypes
import re
import time
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from ..errors import CVParseError, FileAccessError, StorageError
from ..models import DocumentReference
from ..storage.base import BlobStore, ReferenceStore
from .resolve import parse_locator
from .text import SUPPORTED_SUFFIXES, format_for


logger = logging.getLogger(__name__)

EXTERNAL_LINK_NAME = "External Link"

_UNSAFE_NAME = re.compile(r"[\s()]")


class DocumentManager:
    """Maintain the one-document-per-owner DocumentReference."""

    def __init__(
        self,
        blob_store: BlobStore,
        references: ReferenceStore,
        upload_bucket: str = "user-files",
        max_upload_mb: int = 5,
    ):
        self.blob_store = blob_store
        self.references = references
        self.upload_bucket = upload_bucket
        self.max_upload_bytes = max_upload_mb * 1024 * 1024

    async def upload(self, owner_id: str, data: bytes, file_name: str) -> DocumentReference:
        """Store a file and make it the owner's active document."""
        format_for(file_name)
        if len(data) > self.max_upload_bytes:
            raise CVParseError(
                f"File too large: {len(data)} bytes (max {self.max_upload_bytes})",
                {"file_name": file_name},
            )

        safe_name = _UNSAFE_NAME.sub("_", PurePosixPath(file_name).name)
        path = f"cvs/{int(time.time() * 1000)}-{safe_name}"
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        await self.blob_store.upload(self.upload_bucket, path, data, content_type)

        reference = DocumentReference(
            owner_id=owner_id,
            storage_locator=self.blob_store.get_public_url(self.upload_bucket, path),
            display_name=file_name,
        )
        await self.references.put(reference)
        logger.info("Uploaded CV for %s to %s/%s", owner_id, self.upload_bucket, path)
        return reference

    async def link(self, owner_id: str, url: str) -> DocumentReference:
        """Make an externally hosted file the owner's active document.

        The display name is the URL's file name when it has a supported
        suffix, so that the extractor can pick a format for it.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise CVParseError(f"Not an http(s) URL: {url!r}")

        name = PurePosixPath(unquote(parsed.path)).name
        display_name = name if PurePosixPath(name).suffix.lower() in SUPPORTED_SUFFIXES else EXTERNAL_LINK_NAME

        reference = DocumentReference(owner_id=owner_id, storage_locator=url, display_name=display_name)
        await self.references.put(reference)
        logger.info("Linked external CV for %s: %s", owner_id, url)
        return reference

    async def delete(self, owner_id: str) -> bool:
        """Remove the owner's reference, and the stored file if it is ours."""
        reference = await self.references.get(owner_id)
        if reference is None:
            return False

        await self.references.delete(owner_id)

        try:
            bucket, path = parse_locator(reference.storage_locator, self.upload_bucket)
        except FileAccessError:
            return True
        if self.blob_store.get_public_url(bucket, path) == reference.storage_locator:
            try:
                await self.blob_store.remove(bucket, path)
            except StorageError as e:
                logger.error("Error deleting %s/%s from storage: %s", bucket, path, e)
            else:
                logger.info("Removed stored CV %s/%s", bucket, path)
        return True
