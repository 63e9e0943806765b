"""Image rasterizer: input document -> ordered PNG page blobs.

PDFs are rendered page by page with PyMuPDF; images pass through as a
single page. Pages are persisted to the blob store and only their
references travel further down the pipeline.
"""

import asyncio
import hashlib
import logging

import fitz  # PyMuPDF

from config import settings
from errors import RasterizationFailed, UnsupportedFileType
from preprocessing import is_image, normalize_page
from sources import Source

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
# PDF readers accept leading junk before the header
PDF_HEADER_WINDOW = 1024


def sniff_file_type(data: bytes) -> str:
    """Return "pdf" or "image" from the content, never the file name."""
    if PDF_MAGIC in data[:PDF_HEADER_WINDOW]:
        return "pdf"
    if is_image(data):
        return "image"
    raise UnsupportedFileType(
        "Unsupported or undetectable file type",
        header=data[:8].hex(),
        size=len(data),
    )


def render_pdf_pages(data: bytes, dpi: int | None = None) -> list[bytes]:
    """Render each PDF page to PNG bytes, in page order."""
    zoom = (dpi or settings.RENDER_DPI) / 72.0
    matrix = fitz.Matrix(zoom, zoom)

    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.page_count == 0:
                raise RasterizationFailed("PDF has no pages")
            return [page.get_pixmap(matrix=matrix, alpha=False).tobytes("png") for page in doc]
    except RasterizationFailed:
        raise
    except Exception as e:
        raise RasterizationFailed(f"PDF rendering failed: {e}") from e


def _to_page_images(data: bytes, file_type: str, dpi: int | None) -> list[bytes]:
    raw_pages = render_pdf_pages(data, dpi) if file_type == "pdf" else [data]
    try:
        return [normalize_page(page) for page in raw_pages]
    except ValueError as e:
        raise RasterizationFailed(f"Page normalization failed: {e}") from e


async def rasterize(source: Source, store, dpi: int | None = None) -> list[Source]:
    """Convert a document into page image blobs (index 0 = page 1)."""
    data = await source.read_bytes()
    file_type = sniff_file_type(data)
    file_hash = hashlib.md5(data).hexdigest()

    pages = await asyncio.to_thread(_to_page_images, data, file_type, dpi)
    logger.info(
        "Rasterized %s document: %d bytes -> %d page(s)",
        file_type, len(data), len(pages),
    )

    stored = []
    for i, png in enumerate(pages):
        stored.append(await store.put(f"{file_hash}_{i}.png", png, "image/png"))
    return stored
