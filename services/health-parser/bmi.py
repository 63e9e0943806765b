"""BMI computed from height and weight.

A BMI read from the document or produced by the model is never kept; the
record's BMI always agrees with its own height and weight.
"""

import logging
import re

from schema import TEST_RESULT_KEY

logger = logging.getLogger(__name__)

BMI_UNIT = "kg/m2"

_HEIGHT_TO_M = {
    "cm": 0.01,
    "m": 1.0,
    "in": 0.0254,
    "inch": 0.0254,
    "inches": 0.0254,
    "ft": 0.3048,
    "feet": 0.3048,
}

_WEIGHT_TO_KG = {
    "kg": 1.0,
    "lb": 1 / 2.20462,
    "lbs": 1 / 2.20462,
    "pound": 1 / 2.20462,
    "pounds": 1 / 2.20462,
}

_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def calculate_bmi(height, height_unit: str | None, weight, weight_unit: str | None) -> float | None:
    """BMI rounded to 2 decimals, or None when the input is unusable."""
    try:
        h, w = float(height), float(weight)
    except (TypeError, ValueError):
        return None
    if h <= 0 or w <= 0:
        return None

    h_factor = _HEIGHT_TO_M.get((height_unit or "").strip().lower())
    w_factor = _WEIGHT_TO_KG.get((weight_unit or "").strip().lower())
    if h_factor is None or w_factor is None:
        return None

    meters = h * h_factor
    return round(w * w_factor / (meters * meters), 2)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal weight"
    if bmi < 30:
        return "Overweight"
    return "Obese"


def _measurement(entry: dict | None) -> tuple[float, str | None] | None:
    if not entry or entry.get("value") is None:
        return None
    match = _NUMBER.search(str(entry["value"]))
    if not match:
        return None
    return float(match.group(0)), entry.get("unit")


def apply_computed_bmi(record: dict) -> dict:
    """Replace any BMI in the record with one computed from height and weight."""
    results = record.get(TEST_RESULT_KEY)
    if results is None:
        return record

    results = dict(results)
    if results.pop("bmi", None) is not None:
        logger.debug("Discarded extracted BMI")

    height = _measurement(results.get("height"))
    weight = _measurement(results.get("weight"))
    if height and weight:
        h_value, h_unit = height
        # Metric units are the canonical ones once vitals are normalized
        h_unit = h_unit or ("m" if h_value < 3 else "cm")
        value = calculate_bmi(h_value, h_unit, weight[0], weight[1] or "kg")
        if value is not None:
            results["bmi"] = {"value": str(value), "unit": BMI_UNIT}
            logger.info("Computed BMI from height and weight")

    return {**record, TEST_RESULT_KEY: results}
