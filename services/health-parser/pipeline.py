"""Document -> structured health record.

Flow: resolve source -> rasterize -> OCR -> classify -> three extraction
passes (text + image, text only, image only) in parallel -> merge pages ->
merge passes -> vital signs -> BMI -> validate.
"""

import asyncio
import base64
import logging
import time

from batching import gather_or_cancel, process_batch_with_concurrency
from bmi import apply_computed_bmi
from classifier import DocumentClassifier, classify
from config import settings
from extraction import Degraded, extract
from merge import merge_pages, merge_passes
from models import (
    DocumentParserOptions,
    Mode,
    OCRModel,
    ParseRequest,
    ParseResponse,
    PassResult,
    VisionParserOptions,
)
from prompts import MessagePayload, select_prompt
from rasterizer import rasterize
from registry import ParserRegistry, default_registry
from schema import validate_record
from sources import Source, resolve_source
from storage import get_blob_store
from vision_client import VisionClient
from vital_signs import enhance_vital_signs

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_PARSER = DocumentParserOptions(parser="Docling", model="document-parse")


def default_vision_options() -> VisionParserOptions:
    if settings.is_local:
        return VisionParserOptions(parser="Ollama", model=settings.OLLAMA_MODEL)
    return VisionParserOptions(parser="OpenAI", model=settings.OPENAI_MODEL)


async def _image_data_url(page: Source, index: int) -> str:
    data = await page.read_bytes()
    return "data:image/png;base64," + base64.b64encode(data).decode()


async def _run_pass(
    *,
    exclude_image: bool,
    exclude_text: bool,
    mode: Mode,
    pages: list[Source],
    markdown: list[str],
    images: list[str],
    vision: VisionClient,
    options: VisionParserOptions,
    semaphore: asyncio.Semaphore,
) -> PassResult:
    prompt = select_prompt(exclude_image, exclude_text, mode)

    async def extract_page(page: Source, index: int):
        payload = MessagePayload(
            context=None if exclude_text else markdown[index],
            image_data=None if exclude_image else images[index],
        )
        return await extract(
            payload,
            prompt,
            options.model,
            vision,
            api_key=options.api_key,
            api_url=options.api_url,
        )

    outcomes = await process_batch_with_concurrency(pages, extract_page, semaphore=semaphore)
    degraded = sum(1 for o in outcomes if isinstance(o, Degraded))
    if degraded:
        logger.warning("Pass %s: %d of %d page(s) degraded", prompt.name, degraded, len(pages))

    return merge_pages([o.record for o in outcomes], mode, degraded_pages=degraded)


async def parse_health_data(
    request: ParseRequest,
    *,
    registry: ParserRegistry | None = None,
    classifier: DocumentClassifier | None = None,
    store=None,
) -> ParseResponse:
    """Parse one health document into a validated record with page provenance."""
    start = time.monotonic()
    registry = registry or default_registry()
    store = store or get_blob_store()

    vision_options = request.vision_parser or default_vision_options()
    document_options = request.document_parser or DEFAULT_DOCUMENT_PARSER
    vision = registry.vision_parser(vision_options.parser)
    document = registry.document_parser(document_options.parser)

    # Fail before any page work if the backend or model is missing
    await vision.health_check(
        vision_options.model,
        api_url=vision_options.api_url,
        api_key=vision_options.api_key,
    )

    source = resolve_source(request.file)
    pages = await rasterize(source, store)
    ocr: OCRModel = await document.ocr(source)
    mode = classifier.classify(ocr.text) if classifier else classify(ocr.text)

    markdown = await process_batch_with_concurrency(
        pages,
        lambda page, _: document.parse(page),
        limit=settings.TEXT_PARSE_CONCURRENCY,
    )
    images = await process_batch_with_concurrency(
        pages,
        _image_data_url,
        limit=settings.IMAGE_FETCH_CONCURRENCY,
    )

    limit = (
        settings.LOCAL_INFERENCE_CONCURRENCY
        if vision.resource_constrained
        else settings.REMOTE_INFERENCE_CONCURRENCY
    )
    semaphore = asyncio.Semaphore(limit)
    common = dict(
        mode=mode,
        pages=pages,
        markdown=markdown,
        images=images,
        vision=vision,
        options=vision_options,
        semaphore=semaphore,
    )

    total, text_only, image_only = await gather_or_cancel(
        _run_pass(exclude_image=False, exclude_text=False, **common),
        _run_pass(exclude_image=True, exclude_text=False, **common),
        _run_pass(exclude_image=False, exclude_text=True, **common),
    )

    record, provenance = merge_passes(total, text_only, image_only, mode)

    if mode is not Mode.IMAGING_REPORT:
        record = enhance_vital_signs(record, ocr.text)
        record = apply_computed_bmi(record)
        # computed, not read from any page
        provenance.pop("bmi", None)

    data = validate_record(record, mode)

    degraded = total.degraded_pages + text_only.degraded_pages + image_only.degraded_pages
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Parsed %d page(s) as %s with %s/%s in %dms (%d degraded page extraction(s))",
        len(pages), mode.value, vision.name, vision_options.model, elapsed_ms, degraded,
    )

    return ParseResponse(data=[data], pages=[provenance], ocr_results=[ocr], mode=mode)
