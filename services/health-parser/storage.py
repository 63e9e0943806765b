"""Blob storage for rasterized page images."""

import asyncio
import logging
from pathlib import Path

import httpx

from config import settings
from errors import RasterizationFailed
from sources import LocalSource, RemoteSource, Source

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Writes blobs into the local upload directory."""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.UPLOAD_DIR)

    async def put(self, name: str, data: bytes, content_type: str) -> Source:
        path = self._root / name
        await asyncio.to_thread(self._write, path, data)
        logger.debug("Stored %s (%d bytes, %s)", path, len(data), content_type)
        return LocalSource(path)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class RemoteBlobStore:
    """Uploads blobs to an HTTP blob service and returns download URLs."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.BLOB_STORE_URL).rstrip("/")
        self._token = token if token is not None else settings.BLOB_STORE_TOKEN
        self._transport = transport

    async def put(self, name: str, data: bytes, content_type: str) -> Source:
        headers = {"Content-Type": content_type}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            async with httpx.AsyncClient(timeout=60.0, transport=self._transport) as client:
                resp = await client.put(f"{self._base_url}/uploads/{name}", content=data, headers=headers)
        except httpx.HTTPError as e:
            raise RasterizationFailed(f"Blob upload failed: {e}", blob=name) from e

        if resp.status_code not in (200, 201):
            raise RasterizationFailed(f"Blob upload failed with HTTP {resp.status_code}", blob=name)

        body = resp.json()
        url = body.get("downloadUrl") or body.get("url")
        if not url:
            raise RasterizationFailed("Blob service returned no download URL", blob=name)
        return RemoteSource(url)


def get_blob_store() -> LocalBlobStore | RemoteBlobStore:
    if settings.is_local or not settings.BLOB_STORE_URL:
        return LocalBlobStore()
    return RemoteBlobStore()
