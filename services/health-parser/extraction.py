"""Extraction orchestrator: prompt the vision backend, recover and heal JSON.

One call extracts one page under one modality configuration. Transient
problems (timeouts, malformed or off-schema output, a busy backend) are
retried and, once retries are exhausted, degrade to an empty valid record
so a single bad page never aborts the document.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from config import settings
from errors import BackendUnavailable, SchemaViolation
from models import Mode
from prompts import MessagePayload, PromptTemplate
from schema import (
    CLINICAL_DATA_FIELDS,
    CLINICAL_DATA_KEY,
    CONTAINERS,
    FIELD_NAMES,
    IMAGING_REPORT_KEY,
    TEST_NAME_ALIASES,
    TEST_RESULT_KEY,
    empty_record,
    validate_record,
)
from vision_client import VisionClient, VisionServiceUnavailable

logger = logging.getLogger(__name__)

# Wrong top-level keys models produce instead of the expected container
CONTAINER_ALIASES: dict[str, tuple[str, ...]] = {
    TEST_RESULT_KEY: ("test_results", "testResults", "results", "testResult"),
    CLINICAL_DATA_KEY: ("clinicalData", "clinical_notes", "clinical"),
    IMAGING_REPORT_KEY: ("imagingReport", "imaging_results", "report", "radiology_report"),
}

# Keys a list-of-rows test result may use for the test name
_ROW_NAME_KEYS = ("name", "test", "test_name", "testName")


class MalformedOutput(Exception):
    """Model output is not a JSON object."""


@dataclass(frozen=True)
class Extracted:
    record: dict[str, Any]


@dataclass(frozen=True)
class Degraded:
    """Empty but valid record standing in for a failed page."""

    record: dict[str, Any]
    reason: str


ExtractionOutcome = Extracted | Degraded

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    MalformedOutput,
    SchemaViolation,
    VisionServiceUnavailable,
)


async def extract(
    payload: MessagePayload,
    prompt: PromptTemplate,
    model: str,
    client: VisionClient,
    *,
    api_key: str = "",
    api_url: str | None = None,
    attempts: int | None = None,
    delay: float | None = None,
    timeout: float | None = None,
) -> ExtractionOutcome:
    """Extract one record from one page.

    Raises BackendUnavailable / ModelNotFound when the pre-flight health
    check fails or the backend stays unavailable; any error that is not
    transient propagates unchanged.
    """
    attempts = attempts if attempts is not None else settings.INFERENCE_RETRY_ATTEMPTS
    delay = delay if delay is not None else settings.INFERENCE_RETRY_DELAY
    timeout = timeout if timeout is not None else settings.INFERENCE_TIMEOUT_SECONDS
    mode = prompt.mode

    await client.health_check(model, api_url=api_url, api_key=api_key)
    messages = prompt.render(payload)

    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=delay, increment=delay),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                "Extraction with %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                prompt.name,
                type(state.outcome.exception()).__name__,  # type: ignore[union-attr]
                state.next_action.sleep,  # type: ignore[union-attr]
                state.attempt_number,
                attempts,
            ),
        ):
            with attempt:
                raw = await asyncio.wait_for(
                    client.chat(model, messages, api_key=api_key, api_url=api_url),
                    timeout=timeout,
                )
                record = parse_record(raw, mode)
    except VisionServiceUnavailable as e:
        logger.error("%s backend unavailable after %d attempts: %s", client.name, attempts, e)
        raise BackendUnavailable(
            f"{client.name} backend unavailable: {e}",
            backend=client.name,
            api_url=api_url,
            model=model,
        ) from e
    except asyncio.TimeoutError:
        return _degrade(mode, prompt, f"inference timed out after {timeout:.0f}s")
    except (MalformedOutput, SchemaViolation) as e:
        return _degrade(mode, prompt, str(e))

    logger.info(
        "Extraction with %s done: %d field(s)",
        prompt.name, sum(len(v) for v in record.values() if isinstance(v, dict)),
    )
    return Extracted(record)


def _degrade(mode: Mode, prompt: PromptTemplate, reason: str) -> Degraded:
    logger.warning("Extraction with %s degraded to an empty record: %s", prompt.name, reason)
    return Degraded(record=empty_record(mode), reason=reason)


def parse_record(raw: str, mode: Mode) -> dict[str, Any]:
    """Raw model text -> validated record for ``mode``."""
    parsed = try_parse_json(raw)
    if parsed is None:
        raise MalformedOutput("model output is not a JSON object")
    return validate_record(heal_record(parsed, mode), mode)


def try_parse_json(raw: str) -> dict | None:
    """Try to extract a JSON object from the model output.

    Handles: direct JSON, markdown fences, preamble text, and
    <think>...</think> blocks from reasoning models.
    """
    if not raw:
        return None

    cleaned = re.sub(r"<think>.*?</think>", "", raw, flags=re.DOTALL).strip()

    # Try direct parse first
    try:
        result = json.loads(cleaned)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass

    # Try to find JSON block in markdown code fences
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", cleaned, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1).strip())
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    # Outermost { ... } slice, nested objects included
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            result = json.loads(cleaned[start:end + 1])
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass

    logger.warning("Could not parse JSON from model response (%d chars)", len(cleaned))
    return None


def heal_record(payload: dict, mode: Mode) -> dict[str, Any]:
    """Bring structurally-close model output into the mode's closed shape."""
    containers = CONTAINERS[mode]
    found = {c: _find_container(payload, c) for c in containers}

    if all(v is _MISSING for v in found.values()):
        logger.info("No %s container in model output, wrapping the payload", containers[0])
        found = _wrap_payload(payload, mode)

    record: dict[str, Any] = {}
    for container, value in found.items():
        if container == TEST_RESULT_KEY:
            record[container] = _heal_test_results(value)
        elif container == CLINICAL_DATA_KEY:
            fields = _heal_narrative(value, container)
            record[container] = fields or None
        else:
            record[container] = _heal_narrative(value, container) or {}
    return record


class _Missing:
    pass


_MISSING = _Missing()


def _find_container(payload: dict, container: str) -> Any:
    if container in payload:
        return payload[container]
    for alias in CONTAINER_ALIASES.get(container, ()):
        if alias in payload:
            logger.debug("Renaming container %s -> %s", alias, container)
            return payload[alias]
    return _MISSING


def _wrap_payload(payload: dict, mode: Mode) -> dict[str, Any]:
    if mode is Mode.IMAGING_REPORT:
        return {IMAGING_REPORT_KEY: payload}
    if mode is Mode.LAB_RESULTS:
        return {TEST_RESULT_KEY: payload}

    # Clinical: narrative fields go to clinical_data, the rest are tests
    narrative = {k: v for k, v in payload.items() if to_snake_case(k) in CLINICAL_DATA_FIELDS}
    tests = {k: v for k, v in payload.items() if k not in narrative}
    return {TEST_RESULT_KEY: tests, CLINICAL_DATA_KEY: narrative or None}


def to_snake_case(key: str) -> str:
    key = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key.strip())
    return re.sub(r"[^a-z0-9]+", "_", key.lower()).strip("_")


def canonical_test_name(key: str) -> str | None:
    """Map a model-produced test key onto the closed test-name set."""
    names = FIELD_NAMES[TEST_RESULT_KEY]
    snake = to_snake_case(key)
    if snake in names:
        return snake
    if snake in TEST_NAME_ALIASES:
        return TEST_NAME_ALIASES[snake]
    compact = snake.replace("_", "")
    if compact in TEST_NAME_ALIASES:
        return TEST_NAME_ALIASES[compact]
    return None


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return "; ".join(t for t in (_to_text(v) for v in value) if t) or None
    if isinstance(value, dict):
        parts = [f"{k}: {t}" for k, t in ((k, _to_text(v)) for k, v in value.items()) if t]
        return "; ".join(parts) or None
    text = str(value).strip()
    return text or None


def _heal_test_results(value: Any) -> dict[str, dict]:
    if isinstance(value, list):
        rows = {}
        for row in value:
            if not isinstance(row, dict):
                continue
            name = next((row[k] for k in _ROW_NAME_KEYS if row.get(k)), None)
            if name:
                rows[str(name)] = row
        value = rows

    if not isinstance(value, dict):
        return {}

    healed: dict[str, dict] = {}
    for key, entry in value.items():
        name = canonical_test_name(str(key))
        if name is None:
            logger.debug("Dropping unknown test key %r", key)
            continue

        if isinstance(entry, dict):
            result = {"value": _to_text(entry.get("value")), "unit": _to_text(entry.get("unit"))}
        else:
            result = {"value": _to_text(entry), "unit": None}

        if result["value"] is None or name in healed:
            continue
        healed[name] = result
    return healed


def _heal_narrative(value: Any, container: str) -> dict[str, str | None]:
    if not isinstance(value, dict):
        return {}

    allowed = FIELD_NAMES[container]
    healed: dict[str, str | None] = {}
    for key, entry in value.items():
        name = to_snake_case(str(key))
        if name not in allowed:
            logger.debug("Dropping unknown %s key %r", container, key)
            continue
        healed[name] = _to_text(entry)
    return healed
