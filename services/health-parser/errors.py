"""Error taxonomy for the parsing pipeline.

Everything raised from here is fatal for the request. Transient inference
problems never surface as these errors; the extractor turns them into a
degraded (empty but valid) record instead.
"""

from enum import Enum


class ErrorKind(str, Enum):
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"
    RASTERIZATION_FAILED = "rasterization_failed"
    SOURCE_UNREADABLE = "source_unreadable"
    INVALID_MODALITY_COMBINATION = "invalid_modality_combination"
    INVALID_PARSER = "invalid_parser"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    MODEL_NOT_FOUND = "model_not_found"
    SCHEMA_VIOLATION = "schema_violation"


class PipelineError(Exception):
    """Base class for fatal pipeline errors.

    ``detail`` carries whatever the caller needs to show actionable
    guidance (backend URL, model id, detected file type, ...).
    """

    kind: ErrorKind

    def __init__(self, message: str, **detail):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, **self.detail}


class UnsupportedFileType(PipelineError):
    kind = ErrorKind.UNSUPPORTED_FILE_TYPE


class RasterizationFailed(PipelineError):
    kind = ErrorKind.RASTERIZATION_FAILED


class SourceUnreadable(PipelineError):
    kind = ErrorKind.SOURCE_UNREADABLE


class InvalidModalityCombination(PipelineError):
    kind = ErrorKind.INVALID_MODALITY_COMBINATION


class InvalidParser(PipelineError):
    """Unknown or disabled parser name."""

    kind = ErrorKind.INVALID_PARSER


class BackendUnavailable(PipelineError):
    kind = ErrorKind.BACKEND_UNAVAILABLE


class ModelNotFound(PipelineError):
    kind = ErrorKind.MODEL_NOT_FOUND


class SchemaViolation(PipelineError):
    kind = ErrorKind.SCHEMA_VIOLATION


# Status codes for the HTTP layer
HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNSUPPORTED_FILE_TYPE: 415,
    ErrorKind.RASTERIZATION_FAILED: 422,
    ErrorKind.SOURCE_UNREADABLE: 400,
    ErrorKind.INVALID_MODALITY_COMBINATION: 400,
    ErrorKind.INVALID_PARSER: 400,
    ErrorKind.BACKEND_UNAVAILABLE: 503,
    ErrorKind.MODEL_NOT_FOUND: 422,
    ErrorKind.SCHEMA_VIOLATION: 500,
}
