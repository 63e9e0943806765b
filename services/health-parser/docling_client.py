"""OCR / document-conversion adapter for docling-serve.

OCR is best-effort context for the rest of the pipeline: any backend or
transport failure yields an empty but valid result, never an exception.
"""

import logging
from abc import ABC, abstractmethod

import httpx

from config import settings
from errors import PipelineError
from models import (
    BoundingBox,
    ModelInfo,
    OCRMetadata,
    OCRModel,
    OCRPage,
    OCRPageSize,
    OCRWord,
    Vertex,
)
from sources import Source

logger = logging.getLogger(__name__)

# docling-serve has no per-span confidence for converted text
SPAN_CONFIDENCE = 0.98

CONVERT_OPTIONS: dict[str, str | list[str]] = {
    "ocr_engine": "easyocr",
    "pdf_backend": "dlparse_v4",
    "from_formats": ["pdf", "docx", "image"],
    "force_ocr": "true",
    "image_export_mode": "placeholder",
    "ocr_lang": "en",
    "table_mode": "accurate",
    "abort_on_error": "false",
    "return_as_file": "false",
    "do_ocr": "true",
}


class DocumentParser(ABC):
    """Capability set every document/OCR backend exposes."""

    name: str = ""
    api_key_required: bool = False

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def models(self) -> list[ModelInfo]:
        """Models this backend offers."""

    @abstractmethod
    async def ocr(self, source: Source) -> OCRModel:
        """Page-structured OCR of the whole document."""

    @abstractmethod
    async def parse(self, source: Source) -> str:
        """Markdown rendering of the document (or a single page image)."""


class DoclingDocumentParser(DocumentParser):
    name = "Docling"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url if base_url is not None else settings.DOCLING_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.DOCLING_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    async def models(self) -> list[ModelInfo]:
        return [ModelInfo(id="document-parse", name="Document Parse")]

    async def ocr(self, source: Source) -> OCRModel:
        try:
            document = await self._convert(source, "json")
            content = document.get("json_content")
            if not content:
                raise ValueError("no document.json_content in docling-serve response")
            result = convert_json_content(content)
        except (httpx.HTTPError, PipelineError, ValueError, KeyError, TypeError) as e:
            logger.error("[Docling] OCR failed for %s: %s", source.name, e)
            return OCRModel.empty()

        logger.info("[Docling] OCR done for %s: %d page(s)", source.name, len(result.pages))
        return result

    async def parse(self, source: Source) -> str:
        try:
            document = await self._convert(source, "md")
            markdown = document.get("md_content")
            if markdown is None:
                raise ValueError("no document.md_content in docling-serve response")
        except (httpx.HTTPError, PipelineError, ValueError, KeyError, TypeError) as e:
            logger.error("[Docling] parse failed for %s: %s", source.name, e)
            return ""
        return markdown

    async def _convert(self, source: Source, to_format: str) -> dict:
        data = await source.read_bytes()
        form = {**CONVERT_OPTIONS, "to_formats": to_format}
        files = {"files": (source.name, data, "application/octet-stream")}

        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                "/v1alpha/convert/file",
                data=form,
                files=files,
                headers={"Accept": "application/json"},
            )

        if resp.status_code != 200:
            raise ValueError(f"docling-serve returned HTTP {resp.status_code}: {resp.text[:200]}")

        document = resp.json().get("document")
        if not isinstance(document, dict):
            raise ValueError("no document in docling-serve response")
        return document


def convert_json_content(data: dict) -> OCRModel:
    """Convert docling's json_content into the page/word OCR model.

    Bounding boxes become 4 vertices (TL, TR, BR, BL) in top-left-origin
    pixel space; docling reports most boxes with a bottom-left origin.
    """
    pages_in = data.get("pages") or {}
    texts = data.get("texts") or []

    metadata_pages: list[OCRPageSize] = []
    pages: list[OCRPage] = []

    for page_no in sorted(int(k) for k in pages_in):
        size = pages_in[str(page_no)]["size"]
        width, height = size["width"], size["height"]
        metadata_pages.append(OCRPageSize(height=height, width=width, page=page_no))

        words: list[OCRWord] = []
        for element in texts:
            for prov in element.get("prov", []):
                if prov.get("page_no") != page_no:
                    continue
                words.append(OCRWord(
                    id=len(words),
                    text=element.get("text", ""),
                    confidence=SPAN_CONFIDENCE,
                    bounding_box=_to_vertices(prov.get("bbox"), height),
                ))

        pages.append(OCRPage(
            id=page_no - 1,
            text=" ".join(w.text for w in words).strip(),
            width=width,
            height=height,
            words=words,
        ))

    return OCRModel(
        metadata=OCRMetadata(pages=metadata_pages),
        pages=pages,
        text="\n".join(p.text for p in pages),
    )


def _to_vertices(bbox: dict | None, page_height: float) -> BoundingBox | None:
    if not bbox:
        return None

    left, right = bbox["l"], bbox["r"]
    if str(bbox.get("coord_origin", "BOTTOMLEFT")).upper() == "TOPLEFT":
        top, bottom = bbox["t"], bbox["b"]
    else:
        top, bottom = page_height - bbox["t"], page_height - bbox["b"]

    return BoundingBox(vertices=[
        Vertex(x=round(left), y=round(top)),
        Vertex(x=round(right), y=round(top)),
        Vertex(x=round(right), y=round(bottom)),
        Vertex(x=round(left), y=round(bottom)),
    ])
