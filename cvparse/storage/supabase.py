"""Blob store backed by the Supabase Storage REST API."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from ..errors import StorageError
from .base import BlobStore


class SupabaseBlobStore(BlobStore):
    """Supabase Storage over httpx.

    Endpoints used:
    - POST /storage/v1/object/sign/{bucket}/{path}   signed read URL
    - POST /storage/v1/object/{bucket}/{path}        upload (x-upsert)
    - DELETE /storage/v1/object/{bucket}             remove by prefix
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self._client = client
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "apikey": self.api_key,
                },
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"Storage request failed: {e}") from e
        if response.is_error:
            raise StorageError(
                f"Storage returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def get_signed_read_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        response = await self._request(
            "POST",
            f"{self.url}/storage/v1/object/sign/{bucket}/{quote(path)}",
            json={"expiresIn": expires_in},
        )
        try:
            signed = response.json()["signedURL"]
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("Storage returned no signed URL") from e
        return f"{self.url}/storage/v1{signed}"

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        await self._request(
            "POST",
            f"{self.url}/storage/v1/object/{bucket}/{quote(path)}",
            content=data,
            headers={
                "Content-Type": content_type,
                "Cache-Control": "max-age=3600",
                "x-upsert": "true",
            },
        )

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def remove(self, bucket: str, path: str) -> None:
        await self._request(
            "DELETE",
            f"{self.url}/storage/v1/object/{bucket}",
            json={"prefixes": [path]},
        )
