"""Readable blobs: the input document and the rasterized page images.

A source string is resolved once at pipeline entry; every later stage only
calls ``read_bytes()`` and never branches on URL prefixes again.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

import httpx

from config import settings
from errors import SourceUnreadable

logger = logging.getLogger(__name__)

# Route the web app serves local uploads from
STATIC_UPLOADS_ROUTE = "/api/static/uploads/"


@dataclass(frozen=True)
class LocalSource:
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    async def read_bytes(self) -> bytes:
        try:
            return await asyncio.to_thread(self.path.read_bytes)
        except OSError as e:
            raise SourceUnreadable(f"Cannot read file: {e}", source=str(self.path)) from e


@dataclass(frozen=True)
class RemoteSource:
    url: str
    timeout: float = 60.0

    @property
    def name(self) -> str:
        return Path(urlparse(self.url).path).name or "document"

    async def read_bytes(self) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                resp = await client.get(self.url)
        except httpx.HTTPError as e:
            raise SourceUnreadable(f"Cannot download file: {e}", source=self.url) from e

        if resp.status_code != 200:
            raise SourceUnreadable(
                f"Download failed with HTTP {resp.status_code}",
                source=self.url,
            )
        return resp.content


Source = LocalSource | RemoteSource


def resolve_source(file: str, *, local: bool | None = None, upload_dir: str | None = None) -> Source:
    """Turn the caller's path-or-URL into a Source.

    In the local deployment, URLs pointing at the app's own uploads route
    are read straight from the upload directory.
    """
    local = settings.is_local if local is None else local
    upload_dir = upload_dir or settings.UPLOAD_DIR

    parsed = urlparse(file)
    if parsed.scheme in ("http", "https"):
        if local and STATIC_UPLOADS_ROUTE in parsed.path:
            filename = parsed.path.rsplit("/", 1)[-1]
            return LocalSource(Path(upload_dir) / filename)
        return RemoteSource(file)

    return LocalSource(Path(file))
