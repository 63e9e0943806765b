"""FastAPI health-data parser service.

Turns an uploaded health document (PDF or image) into a validated
structured record with page provenance. Inference is delegated to the
configured vision backend, OCR to docling-serve.
Privacy: never log document content, OCR text or images.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from config import settings
from errors import HTTP_STATUS, PipelineError
from models import ModelInfo, ParseRequest, ParseResponse, ParserDescriptor
from pipeline import parse_health_data
from registry import ParserRegistry, default_registry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_registry: ParserRegistry | None = None


def get_registry() -> ParserRegistry:
    return _registry or default_registry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the parser registry once on startup."""
    global _registry

    _registry = default_registry()
    if not _registry.vision:
        logger.warning("No vision parser enabled for deployment %s", settings.DEPLOYMENT_ENV)

    yield

    await _registry.close()
    logger.info("Parser connections closed")


app = FastAPI(title="Health Data Parser", version="1.0.0", lifespan=lifespan)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    status = HTTP_STATUS.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=status, content={"detail": exc.to_dict()})


@app.post("/api/v1/parse", response_model=ParseResponse, response_model_by_alias=True)
async def parse(request: ParseRequest):
    """Parse a document (path or URL) into a structured health record."""
    logger.info(
        "Processing parse request: vision=%s document=%s",
        request.vision_parser.parser if request.vision_parser else "default",
        request.document_parser.parser if request.document_parser else "default",
    )
    return await parse_health_data(request, registry=get_registry())


@app.get("/api/v1/parsers", response_model=list[ParserDescriptor], response_model_by_alias=True)
async def parsers():
    """List the enabled vision and document parsers."""
    return get_registry().descriptors()


@app.get("/api/v1/parsers/{name}/models", response_model=list[ModelInfo])
async def parser_models(
    name: str,
    api_url: str | None = None,
    x_api_key: str = Header(default=""),
):
    """Model catalog of a vision parser. The key travels in the X-API-Key header."""
    return await get_registry().vision_parser(name).models(api_url=api_url, api_key=x_api_key)


@app.get("/health")
async def health():
    """Return service status and the enabled parsers."""
    registry = get_registry()
    return {
        "status": "healthy",
        "deployment": settings.DEPLOYMENT_ENV,
        "vision_parsers": list(registry.vision),
        "document_parsers": list(registry.document),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
