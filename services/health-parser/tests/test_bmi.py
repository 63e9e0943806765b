"""Tests for BMI computation."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from bmi import BMI_UNIT, apply_computed_bmi, bmi_category, calculate_bmi


class TestCalculateBMI:
    def test_metric(self):
        assert calculate_bmi("184", "cm", "115.6", "kg") == round(115.6 / 1.84 ** 2, 2)

    def test_metres(self):
        assert calculate_bmi(1.75, "m", 70, "kg") == 22.86

    def test_imperial(self):
        bmi = calculate_bmi(6, "ft", 254, "lbs")
        assert bmi == pytest.approx(34.45, abs=0.01)

    @pytest.mark.parametrize("height,h_unit,weight,w_unit", [
        ("abc", "cm", 70, "kg"),
        (0, "cm", 70, "kg"),
        (180, "cm", -1, "kg"),
        (180, "furlong", 70, "kg"),
        (180, "cm", 70, None),
    ])
    def test_unusable_input(self, height, h_unit, weight, w_unit):
        assert calculate_bmi(height, h_unit, weight, w_unit) is None


class TestCategory:
    @pytest.mark.parametrize("bmi,category", [
        (17.0, "Underweight"),
        (18.5, "Normal weight"),
        (24.9, "Normal weight"),
        (25.0, "Overweight"),
        (30.0, "Obese"),
    ])
    def test_boundaries(self, bmi: float, category: str):
        assert bmi_category(bmi) == category


class TestApplyComputedBMI:
    def test_computed_from_height_and_weight(self):
        record = {"test_result": {
            "height": {"value": "184", "unit": "cm"},
            "weight": {"value": "115.6", "unit": "kg"},
        }}
        result = apply_computed_bmi(record)
        assert result["test_result"]["bmi"] == {"value": "34.14", "unit": BMI_UNIT}

    def test_reported_bmi_replaced(self):
        record = {"test_result": {
            "height": {"value": "184", "unit": "cm"},
            "weight": {"value": "115.6", "unit": "kg"},
            "bmi": {"value": "99.9", "unit": "kg/m2"},
        }}
        assert apply_computed_bmi(record)["test_result"]["bmi"]["value"] == "34.14"

    def test_reported_bmi_dropped_without_measurements(self):
        record = {"test_result": {"bmi": {"value": "34.14", "unit": "kg/m2"}}}
        assert apply_computed_bmi(record) == {"test_result": {}}

    def test_missing_units_default_to_metric(self):
        record = {"test_result": {
            "height": {"value": "1.84", "unit": None},
            "weight": {"value": "115.6", "unit": None},
        }}
        assert apply_computed_bmi(record)["test_result"]["bmi"]["value"] == "34.14"

    def test_input_not_mutated(self):
        results = {"bmi": {"value": "1", "unit": None}}
        apply_computed_bmi({"test_result": results})
        assert "bmi" in results

    def test_record_without_test_results(self):
        record = {"imaging_report": {"exam_type": "MRI"}}
        assert apply_computed_bmi(record) is record
