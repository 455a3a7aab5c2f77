"""Blob storage used for message attachments.

Only the interface matters to the relay; the HTTP implementation talks to an
object store that accepts `PUT`/`DELETE` on `<base>/<path>`.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from clearlot_relay.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


class BlobStoreError(RuntimeError):
    """Base exception raised for blob store failures."""


class BlobStoreDisabledError(BlobStoreError):
    """Raised when blob operations are attempted without a configured store."""


@dataclass(frozen=True)
class UploadedBlob:
    """Location and metadata of a stored blob."""

    url: str
    name: str
    size: int


class BlobStore(ABC):
    """Upload and delete opaque blobs."""

    @abstractmethod
    async def upload(self, path: str, filename: str, data: bytes) -> UploadedBlob:
        """Store `data` under `path` and return where it can be fetched."""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """Remove the blob at `url`; a missing blob is not an error."""


class DisabledBlobStore(BlobStore):
    """Placeholder used when no blob backend is configured."""

    async def upload(self, path: str, filename: str, data: bytes) -> UploadedBlob:
        raise BlobStoreDisabledError("Blob storage is not configured")

    async def delete(self, url: str) -> None:
        raise BlobStoreDisabledError("Blob storage is not configured")


class HttpBlobStore(BlobStore):
    """Blob store backed by an HTTP object store."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                )
        return self._client

    async def upload(self, path: str, filename: str, data: bytes) -> UploadedBlob:
        client = await self._ensure_client()
        try:
            response = await client.put(f"/{path.lstrip('/')}", content=data)
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Blob upload failed: {exc}") from exc
        if response.is_error:
            raise BlobStoreError(f"Blob store responded with {response.status_code}")

        url = f"{self.base_url}/{path.lstrip('/')}"
        if response.headers.get("content-type", "").startswith("application/json"):
            url = response.json().get("url", url)
        return UploadedBlob(url=url, name=filename, size=len(data))

    async def delete(self, url: str) -> None:
        client = await self._ensure_client()
        try:
            response = await client.delete(url)
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Blob delete failed: {exc}") from exc
        if response.status_code == HTTP_NOT_FOUND:
            logger.debug("Blob %s already removed", url)
            return
        if response.is_error:
            raise BlobStoreError(f"Blob store responded with {response.status_code}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_blob_store() -> BlobStore:
    """Return the blob store configured in settings."""
    if settings.blob_base_url:
        return HttpBlobStore(
            settings.blob_base_url,
            timeout_seconds=float(settings.blob_http_timeout_seconds),
        )
    return DisabledBlobStore()
