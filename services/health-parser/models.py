"""Pydantic models for the parse request/response and the OCR page model."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Mode(str, Enum):
    """Document type, selects the prompt family and the record schema."""

    LAB_RESULTS = "lab_results"
    CLINICAL_NOTES = "clinical_notes"
    IMAGING_REPORT = "imaging_report"


class CamelModel(BaseModel):
    """Accepts and emits the camelCase keys the web layer uses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestResult(BaseModel):
    """One extracted measurement."""

    __test__ = False  # not a pytest class

    model_config = ConfigDict(extra="forbid", frozen=True, coerce_numbers_to_str=True)

    value: str | None = None
    unit: str | None = None


class PageRef(BaseModel):
    """1-based page number a field value was read from."""

    model_config = ConfigDict(frozen=True)

    page: int = Field(ge=1)


PageProvenance = dict[str, PageRef | None]


class PassResult(BaseModel):
    """Output of one extraction pass (one modality configuration)."""

    model_config = ConfigDict(frozen=True)

    record: dict[str, Any]
    provenance: PageProvenance = {}
    degraded_pages: int = 0


# OCR model

class Vertex(BaseModel):
    x: int
    y: int


class BoundingBox(BaseModel):
    vertices: list[Vertex]


class OCRWord(CamelModel):
    id: int
    text: str
    confidence: float
    bounding_box: BoundingBox | None = None


class OCRPage(BaseModel):
    id: int
    text: str = ""
    width: float
    height: float
    words: list[OCRWord] = []


class OCRPageSize(BaseModel):
    height: float
    width: float
    page: int


class OCRMetadata(BaseModel):
    pages: list[OCRPageSize] = []


class OCRModel(BaseModel):
    metadata: OCRMetadata = Field(default_factory=OCRMetadata)
    pages: list[OCRPage] = []
    text: str = ""

    @classmethod
    def empty(cls) -> "OCRModel":
        return cls()


# Entry point

class VisionParserOptions(CamelModel):
    parser: str
    model: str
    api_key: str = ""
    api_url: str | None = None


class DocumentParserOptions(CamelModel):
    parser: str
    model: str
    api_key: str = ""


class ParseRequest(CamelModel):
    file: str
    vision_parser: VisionParserOptions | None = None
    document_parser: DocumentParserOptions | None = None


class ParseResponse(CamelModel):
    data: list[dict[str, Any]]
    pages: list[PageProvenance]
    ocr_results: list[OCRModel]
    mode: Mode | None = None


class ParserDescriptor(CamelModel):
    name: str
    kind: str
    enabled: bool
    api_key_required: bool
    api_url_required: bool = False


class ModelInfo(BaseModel):
    id: str
    name: str
