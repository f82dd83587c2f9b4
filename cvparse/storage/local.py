"""Filesystem blob store served by the bundled FastAPI app.

Objects live under ``<root>/<bucket>/<path>``. URLs follow the Supabase
Storage layout so that the resolver parses both backends the same way:

- public: ``<base>/storage/v1/object/public/<bucket>/<path>``
- signed: ``<base>/storage/v1/object/sign/<bucket>/<path>?expires=..&token=..``
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import secrets
import time
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

from ..errors import StorageError
from .base import BlobStore


class LocalBlobStore(BlobStore):
    """Store blobs on local disk and sign read URLs with HMAC-SHA256."""

    def __init__(
        self,
        root: Path | str,
        base_url: str,
        signing_secret: str | None = None,
    ):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self._secret = (signing_secret or self._load_or_create_secret()).encode()

    def _load_or_create_secret(self) -> str:
        secret_file = self.root / ".signing_secret"
        if secret_file.exists():
            return secret_file.read_text().strip()
        secret = secrets.token_hex(32)
        secret_file.write_text(secret)
        secret_file.chmod(0o600)
        return secret

    def object_path(self, bucket: str, path: str) -> Path:
        """Map bucket/path to a file under root, refusing traversal."""
        parts = PurePosixPath(path).parts
        if not bucket or "/" in bucket or bucket.startswith("."):
            raise StorageError(f"Invalid bucket name: {bucket!r}")
        if not parts or any(p in ("..", ".") for p in parts) or PurePosixPath(path).is_absolute():
            raise StorageError(f"Invalid object path: {path!r}")
        return self.root / bucket / Path(*parts)

    def sign(self, bucket: str, path: str, expires: int) -> str:
        message = f"{bucket}/{path}:{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(self, bucket: str, path: str, expires: int, token: str) -> bool:
        """Check a signed URL's token and expiry."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self.sign(bucket, path, expires), token)

    async def get_signed_read_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        target = self.object_path(bucket, path)
        if not await asyncio.to_thread(target.is_file):
            raise StorageError(f"Object not found: {bucket}/{path}", status_code=404)

        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "token": self.sign(bucket, path, expires)})
        return f"{self.base_url}/storage/v1/object/sign/{bucket}/{quote(path)}?{query}"

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        target = self.object_path(bucket, path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{path}: {e}") from e

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def remove(self, bucket: str, path: str) -> None:
        target = self.object_path(bucket, path)
        await asyncio.to_thread(target.unlink, missing_ok=True)

    async def read(self, bucket: str, path: str) -> bytes:
        """Read an object's bytes. Used by the server's storage routes."""
        target = self.object_path(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as e:
            raise StorageError(f"Object not found: {bucket}/{path}", status_code=404) from e
