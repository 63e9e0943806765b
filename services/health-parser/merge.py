"""Merging page results into a pass result, and pass results into one record.

Pages: first non-null value per field in page order. Passes: strict priority
cascade, total (text + image) over text-only over image-only. No averaging
or voting.

Page numbers are 0-based everywhere upstream of ``merge_pages``; it is the
single place where they become the 1-based numbers the caller sees.
"""

import logging
from typing import Any

from models import Mode, PageProvenance, PageRef, PassResult
from schema import CLINICAL_DATA_KEY, CONTAINERS, FIELD_NAMES

logger = logging.getLogger(__name__)


def is_null(value: Any) -> bool:
    """True for values that count as "not extracted"."""
    if value is None:
        return True
    if isinstance(value, dict):
        return value.get("value") in (None, "")
    if isinstance(value, str):
        return not value.strip()
    return False


def _section(record: dict, container: str) -> dict:
    return record.get(container) or {}


def merge_pages(records: list[dict], mode: Mode, degraded_pages: int = 0) -> PassResult:
    """Fold per-page records (index 0 = page 1) into one pass result."""
    containers = CONTAINERS[mode]
    merged: dict[str, dict] = {c: {} for c in containers}
    provenance: PageProvenance = {}

    for index, record in enumerate(records):
        for container in containers:
            for field, value in _section(record, container).items():
                if is_null(value) or field in merged[container]:
                    continue
                merged[container][field] = value
                provenance[field] = PageRef(page=index + 1)

    return PassResult(record=merged, provenance=provenance, degraded_pages=degraded_pages)


def merge_passes(
    total: PassResult,
    text_only: PassResult,
    image_only: PassResult,
    mode: Mode,
) -> tuple[dict[str, Any], PageProvenance]:
    """Combine the three passes field by field.

    The first pass in priority order with a non-null value wins, and the
    field's provenance comes from that same pass. Fields null in every pass
    are left out.
    """
    passes = (total, text_only, image_only)
    record: dict[str, Any] = {}
    provenance: PageProvenance = {}
    sources = {"total": 0, "text": 0, "image": 0}

    for container in CONTAINERS[mode]:
        fields: dict[str, Any] = {}
        for field in FIELD_NAMES[container]:
            for label, result in zip(sources, passes):
                value = _section(result.record, container).get(field)
                if is_null(value):
                    continue
                fields[field] = value
                provenance[field] = result.provenance.get(field)
                sources[label] += 1
                break
        record[container] = fields

    if CLINICAL_DATA_KEY in record and not record[CLINICAL_DATA_KEY]:
        record[CLINICAL_DATA_KEY] = None

    logger.info(
        "Merged %s passes: %d field(s) from total, %d from text-only, %d from image-only",
        mode.value, sources["total"], sources["text"], sources["image"],
    )
    return record, provenance
