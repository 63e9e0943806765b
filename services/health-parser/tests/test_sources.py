"""Tests for source resolution and blob storage."""

import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import RasterizationFailed, SourceUnreadable
from sources import LocalSource, RemoteSource, resolve_source
from storage import LocalBlobStore, RemoteBlobStore


class TestResolveSource:
    def test_plain_path(self):
        source = resolve_source("/data/report.pdf", local=True)
        assert source == LocalSource(Path("/data/report.pdf"))

    def test_remote_url(self):
        source = resolve_source("https://blob.example.com/uploads/abc.pdf", local=False)
        assert isinstance(source, RemoteSource)
        assert source.name == "abc.pdf"

    def test_local_uploads_url_maps_to_upload_dir(self):
        source = resolve_source(
            "http://localhost:3000/api/static/uploads/abc.pdf",
            local=True,
            upload_dir="/srv/uploads",
        )
        assert source == LocalSource(Path("/srv/uploads/abc.pdf"))

    def test_uploads_url_stays_remote_outside_local(self):
        source = resolve_source("https://app.example.com/api/static/uploads/abc.pdf", local=False)
        assert isinstance(source, RemoteSource)


class TestLocalSource:
    @pytest.mark.asyncio
    async def test_read(self, tmp_path: Path):
        path = tmp_path / "a.bin"
        path.write_bytes(b"abc")
        assert await LocalSource(path).read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path):
        with pytest.raises(SourceUnreadable):
            await LocalSource(tmp_path / "missing.pdf").read_bytes()


class TestLocalBlobStore:
    @pytest.mark.asyncio
    async def test_put_creates_directory(self, tmp_path: Path):
        store = LocalBlobStore(tmp_path / "nested" / "uploads")
        source = await store.put("x_0.png", b"png-bytes", "image/png")
        assert isinstance(source, LocalSource)
        assert await source.read_bytes() == b"png-bytes"


class TestRemoteBlobStore:
    @pytest.mark.asyncio
    async def test_put_returns_download_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["type"] = request.headers["content-type"]
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"downloadUrl": "https://cdn.example.com/x_0.png"})

        store = RemoteBlobStore("https://blob.example.com", token="t0k", transport=httpx.MockTransport(handler))
        source = await store.put("x_0.png", b"png-bytes", "image/png")

        assert source == RemoteSource("https://cdn.example.com/x_0.png")
        assert seen == {
            "method": "PUT",
            "url": "https://blob.example.com/uploads/x_0.png",
            "type": "image/png",
            "auth": "Bearer t0k",
        }

    @pytest.mark.asyncio
    async def test_upload_failure(self):
        store = RemoteBlobStore(
            "https://blob.example.com",
            token="",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text=json.dumps({"error": "x"}))),
        )
        with pytest.raises(RasterizationFailed):
            await store.put("x_0.png", b"png-bytes", "image/png")
