"""Storage backends for uploaded CV files.

Adapters for different blob stores:
- Local filesystem (served by the bundled server)
- Supabase Storage
"""

from __future__ import annotations

from ..config import CVParseConfig
from ..errors import ConfigError
from .base import BlobStore, RecordStore, ReferenceStore
from .local import LocalBlobStore
from .supabase import SupabaseBlobStore


def get_blob_store(config: CVParseConfig) -> BlobStore:
    """Build the blob store selected by ``config.storage.backend``."""
    storage = config.storage
    if storage.backend == "local":
        return LocalBlobStore(
            root=config.storage_root,
            base_url=config.server.base_url,
            signing_secret=storage.signing_secret,
        )
    if storage.backend == "supabase":
        if not storage.supabase_url or not storage.supabase_key:
            raise ConfigError("Supabase storage needs supabase_url and supabase_key")
        return SupabaseBlobStore(storage.supabase_url, storage.supabase_key)
    raise ConfigError(f"Unknown storage backend: {storage.backend}")


__all__ = [
    "BlobStore",
    "RecordStore",
    "ReferenceStore",
    "LocalBlobStore",
    "SupabaseBlobStore",
    "get_blob_store",
]
