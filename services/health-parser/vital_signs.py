"""Deterministic vital-signs recovery from OCR text.

Runs ordered regex families over the raw OCR text and fills vitals the
model missed. Never overwrites a value the record already has, stores
everything in canonical units (cm, kg, bpm, mmHg, %, °C) and keeps the
combined and split blood-pressure fields in agreement. BMI is left to
``bmi.apply_computed_bmi``.
"""

import logging
import re

from schema import TEST_RESULT_KEY

logger = logging.getLogger(__name__)

LB_TO_KG = 0.453592

# Each family is tried in order; the first matching pattern wins.
TEMPERATURE_PATTERNS = (
    # unit optional once labelled
    re.compile(r"temp(?:erature)?\s*[:\-]?\s*(\d{2,3}(?:\.\d+)?(?:\s*°?\s*[CF](?![a-z]))?)(?!\d)", re.I),
    re.compile(r"(\d{2,3}(?:\.\d+)?\s*°\s*[CF])(?![a-z])", re.I),
)

PULSE_PATTERNS = (
    re.compile(r"(?:pulse(?:\s*rate)?|heart\s*rate|\bhr\b)\s*[:\-]?\s*(\d{2,3})(?!\d)", re.I),
    re.compile(r"(\d{2,3})\s*bpm\b", re.I),
)

BLOOD_PRESSURE_PATTERNS = (
    re.compile(r"(?:blood\s*pressure|\bbp\b)\s*[:\-]?\s*(\d{2,3})\s*/\s*(\d{2,3})(?!\d)", re.I),
    re.compile(r"(\d{2,3})\s*/\s*(\d{2,3})\s*mm\s*hg", re.I),
)

OXYGEN_PATTERNS = (
    re.compile(
        r"(?:oxygen\s*(?:level|saturation|sat)|sp\s*o2|o2\s*sat(?:uration)?)\s*[:\-]?\s*(\d{2,3}(?:\.\d+)?)\s*%?",
        re.I,
    ),
)

HEIGHT_PATTERNS = (
    re.compile(r"height\s*[:\-]?\s*(\d{2,3}(?:\.\d+)?\s*cm)", re.I),
    re.compile(r"height\s*[:\-]?\s*(\d\s*(?:ft|feet|')\s*(?:\d{1,2}(?:\.\d+)?\s*(?:in|inches|\")?)?)", re.I),
    re.compile(r"height\s*[:\-]?\s*(\d(?:\.\d{1,2})?\s*m)(?![a-z])", re.I),
    re.compile(r"height\s*[:\-]?\s*(\d{2}(?:\.\d+)?\s*(?:inches|in|\"))", re.I),
    re.compile(r"(\d\s*(?:ft|feet)\s*\d{1,2}(?:\.\d+)?\s*(?:inches|in))(?![a-z])", re.I),
)

WEIGHT_PATTERNS = (
    re.compile(r"weight\s*[:\-]?\s*(\d{2,3}(?:\.\d+)?\s*(?:kg|kilograms?|lbs?|pounds?))(?![a-z])", re.I),
    # bare kg, but not the kg of kg/m2
    re.compile(r"(\d{2,3}(?:\.\d+)?\s*kg)(?![a-z]|\s*/)", re.I),
    re.compile(r"(\d{2,3}(?:\.\d+)?\s*(?:lbs?|pounds?))(?![a-z])", re.I),
)

BMI_PATTERNS = (
    re.compile(r"(?:body\s*mass\s*index|\bbmi\b)\D{0,20}?(\d{2}(?:\.\d+)?)", re.I),
)

_FEET_INCHES = re.compile(r"(\d)\s*(?:ft|feet|')\s*(?:(\d{1,2}(?:\.\d+)?)\s*(?:in|inches|\")?)?", re.I)
_LENGTH = re.compile(r"(\d+(?:\.\d+)?)\s*(cm|inches|inch|in|m|\")(?![a-z])", re.I)
_MASS = re.compile(r"(\d+(?:\.\d+)?)\s*(kg|kilograms?|lbs?|pounds?)(?![a-z])", re.I)
_TEMPERATURE = re.compile(r"(\d+(?:\.\d+)?)\s*°?\s*(celsius|fahrenheit|c|f)?(?![a-z])", re.I)
# Unitless readings above this can only be Fahrenheit
MAX_CELSIUS = 45
_BP_SPLIT = re.compile(r"(\d{2,3})\s*/\s*(\d{2,3})")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def _fmt(number: float) -> str:
    return format(round(number, 1), "g")


def _first(patterns, text: str) -> re.Match | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


def _has_value(entry) -> bool:
    return isinstance(entry, dict) and entry.get("value") not in (None, "")


def parse_height(text: str) -> dict | None:
    """Height in any supported notation -> {"value": <cm>, "unit": "cm"}."""
    match = _FEET_INCHES.search(text)
    if match:
        cm = int(match.group(1)) * 30.48 + float(match.group(2) or 0) * 2.54
        return {"value": _fmt(cm), "unit": "cm"}

    match = _LENGTH.search(text)
    if not match:
        return None
    value, unit = float(match.group(1)), match.group(2).lower()
    if unit == "m":
        value *= 100
    elif unit != "cm":
        value *= 2.54
    return {"value": _fmt(value), "unit": "cm"}


def parse_weight(text: str) -> dict | None:
    match = _MASS.search(text)
    if not match:
        return None
    value, unit = float(match.group(1)), match.group(2).lower()
    if not unit.startswith("k"):
        value *= LB_TO_KG
    return {"value": _fmt(value), "unit": "kg"}


def parse_temperature(text: str) -> dict | None:
    match = _TEMPERATURE.search(text)
    if not match:
        return None
    value, unit = float(match.group(1)), (match.group(2) or "").lower()
    if unit.startswith("f") or (not unit and value > MAX_CELSIUS):
        value = (value - 32) * 5 / 9
    return {"value": _fmt(value), "unit": "°C"}


def extract_vital_signs_from_text(text: str) -> dict[str, dict]:
    """Vitals found in OCR text, keyed by test name, in canonical units."""
    found: dict[str, dict] = {}
    if not text:
        return found

    match = _first(TEMPERATURE_PATTERNS, text)
    if match and (temperature := parse_temperature(match.group(1))):
        found["body_temperature"] = temperature

    match = _first(PULSE_PATTERNS, text)
    if match:
        found["pulse"] = {"value": match.group(1), "unit": "bpm"}

    match = _first(BLOOD_PRESSURE_PATTERNS, text)
    if match:
        found["blood_pressure"] = {"value": f"{match.group(1)}/{match.group(2)}", "unit": "mmHg"}

    match = _first(OXYGEN_PATTERNS, text)
    if match:
        found["oxygen_saturation"] = {"value": match.group(1), "unit": "%"}

    match = _first(HEIGHT_PATTERNS, text)
    if match and (height := parse_height(match.group(1))):
        found["height"] = height

    match = _first(WEIGHT_PATTERNS, text)
    if match and (weight := parse_weight(match.group(1))):
        found["weight"] = weight

    return found


def find_reported_bmi(text: str) -> str | None:
    """BMI as printed on the document. Informational only."""
    match = _first(BMI_PATTERNS, text or "")
    return match.group(1) if match else None


def normalize_vitals(results: dict[str, dict]) -> dict[str, dict]:
    """Convert model-produced height, weight and temperature to canonical units."""
    out = dict(results)
    for field, parse in (("height", parse_height), ("weight", parse_weight), ("body_temperature", parse_temperature)):
        entry = out.get(field)
        if not _has_value(entry):
            continue
        normalized = parse(f"{entry['value']} {entry.get('unit') or ''}")
        if normalized is not None:
            out[field] = normalized
    return out


def reconcile_blood_pressure(results: dict[str, dict]) -> dict[str, dict]:
    """Fill whichever of the combined / split blood-pressure forms is missing."""
    out = dict(results)
    combined = out.get("blood_pressure")
    systolic = out.get("systolic_blood_pressure")
    diastolic = out.get("diastolic_blood_pressure")

    if _has_value(combined):
        match = _BP_SPLIT.search(str(combined["value"]))
        if match:
            unit = combined.get("unit") or "mmHg"
            if not _has_value(systolic):
                out["systolic_blood_pressure"] = {"value": match.group(1), "unit": unit}
            if not _has_value(diastolic):
                out["diastolic_blood_pressure"] = {"value": match.group(2), "unit": unit}
    elif _has_value(systolic) and _has_value(diastolic):
        sys_match = _NUMBER.search(str(systolic["value"]))
        dia_match = _NUMBER.search(str(diastolic["value"]))
        if sys_match and dia_match:
            out["blood_pressure"] = {
                "value": f"{sys_match.group(0)}/{dia_match.group(0)}",
                "unit": systolic.get("unit") or diastolic.get("unit") or "mmHg",
            }
    return out


def enhance_vital_signs(record: dict, text: str) -> dict:
    """Return a copy of ``record`` with vitals filled in from the OCR text."""
    results = record.get(TEST_RESULT_KEY)
    if results is None:
        return dict(record)

    results = reconcile_blood_pressure(normalize_vitals(results))
    results.pop("bmi", None)

    added = 0
    for field, entry in extract_vital_signs_from_text(text).items():
        if _has_value(results.get(field)):
            continue
        results[field] = entry
        added += 1

    results = reconcile_blood_pressure(results)

    if find_reported_bmi(text) is not None:
        logger.debug("Ignoring BMI printed on the document, it is computed from height and weight")
    logger.info("Vital signs enhancer added %d field(s) from OCR text", added)
    return {**record, TEST_RESULT_KEY: results}
