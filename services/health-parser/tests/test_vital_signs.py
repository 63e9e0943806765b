"""Tests for regex vital-signs recovery from OCR text."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from vital_signs import (
    enhance_vital_signs,
    extract_vital_signs_from_text,
    find_reported_bmi,
    normalize_vitals,
    parse_height,
    parse_temperature,
    parse_weight,
    reconcile_blood_pressure,
)


class TestExtractFromText:
    def test_vitals_panel(self, vitals_text: str):
        found = extract_vital_signs_from_text(vitals_text)
        assert found == {
            "body_temperature": {"value": "36.1", "unit": "°C"},
            "pulse": {"value": "88", "unit": "bpm"},
            "blood_pressure": {"value": "136/84", "unit": "mmHg"},
            "oxygen_saturation": {"value": "97", "unit": "%"},
            "height": {"value": "184", "unit": "cm"},
            "weight": {"value": "115.6", "unit": "kg"},
        }

    def test_imperial_units_converted(self):
        found = extract_vital_signs_from_text("Height: 6 ft 0 in Weight: 254 lbs")
        assert found["height"] == {"value": "182.9", "unit": "cm"}
        assert found["weight"] == {"value": "115.2", "unit": "kg"}

    def test_fahrenheit_converted(self):
        found = extract_vital_signs_from_text("Temperature: 101.3 °F")
        assert found["body_temperature"] == {"value": "38.5", "unit": "°C"}

    def test_labelled_temperature_without_unit_is_celsius(self):
        found = extract_vital_signs_from_text("Temperature: 37.2 Pulse: 80")
        assert found["body_temperature"] == {"value": "37.2", "unit": "°C"}
        assert found["pulse"]["value"] == "80"

    def test_labelled_unitless_fahrenheit_reading(self):
        found = extract_vital_signs_from_text("Temp 98.6, pulse 72")
        assert found["body_temperature"] == {"value": "37", "unit": "°C"}

    def test_bpm_suffix(self):
        assert extract_vital_signs_from_text("resting 64 bpm")["pulse"]["value"] == "64"

    def test_bmi_unit_is_not_a_weight(self):
        found = extract_vital_signs_from_text("BMI 34.14 kg/m2")
        assert "weight" not in found

    def test_empty_text(self):
        assert extract_vital_signs_from_text("") == {}

    def test_reported_bmi(self, vitals_text: str):
        assert find_reported_bmi(vitals_text) == "34.14"
        assert find_reported_bmi("no numbers here") is None


class TestUnitParsers:
    @pytest.mark.parametrize("text,cm", [
        ("184 cm", "184"),
        ("1.84 m", "184"),
        ("72 in", "182.9"),
        ("5'10\"", "177.8"),
        ("6 ft", "182.9"),
    ])
    def test_height(self, text: str, cm: str):
        assert parse_height(text) == {"value": cm, "unit": "cm"}

    def test_weight(self):
        assert parse_weight("80 kg") == {"value": "80", "unit": "kg"}
        assert parse_weight("176 pounds") == {"value": "79.8", "unit": "kg"}
        assert parse_weight("heavy") is None

    def test_temperature(self):
        assert parse_temperature("37.2 C") == {"value": "37.2", "unit": "°C"}
        assert parse_temperature("98.6 F") == {"value": "37", "unit": "°C"}
        assert parse_temperature("36.8") == {"value": "36.8", "unit": "°C"}
        assert parse_temperature("warm") is None


class TestNormalizeVitals:
    def test_model_values_converted(self):
        results = normalize_vitals({
            "height": {"value": "72", "unit": "in"},
            "weight": {"value": "254", "unit": "lbs"},
            "glucose": {"value": "95", "unit": "mg/dL"},
        })
        assert results["height"] == {"value": "182.9", "unit": "cm"}
        assert results["weight"] == {"value": "115.2", "unit": "kg"}
        assert results["glucose"] == {"value": "95", "unit": "mg/dL"}

    def test_unparseable_value_kept(self):
        results = normalize_vitals({"height": {"value": "tall", "unit": None}})
        assert results["height"] == {"value": "tall", "unit": None}


class TestReconcileBloodPressure:
    def test_combined_split(self):
        results = reconcile_blood_pressure({"blood_pressure": {"value": "136/84", "unit": "mmHg"}})
        assert results["systolic_blood_pressure"] == {"value": "136", "unit": "mmHg"}
        assert results["diastolic_blood_pressure"] == {"value": "84", "unit": "mmHg"}

    def test_split_combined(self):
        results = reconcile_blood_pressure({
            "systolic_blood_pressure": {"value": "120", "unit": None},
            "diastolic_blood_pressure": {"value": "80", "unit": None},
        })
        assert results["blood_pressure"] == {"value": "120/80", "unit": "mmHg"}

    def test_existing_split_values_kept(self):
        results = reconcile_blood_pressure({
            "blood_pressure": {"value": "136/84", "unit": "mmHg"},
            "systolic_blood_pressure": {"value": "135", "unit": "mmHg"},
        })
        assert results["systolic_blood_pressure"]["value"] == "135"
        assert results["diastolic_blood_pressure"]["value"] == "84"


class TestEnhanceVitalSigns:
    def test_fills_missing_vitals(self, vitals_text: str):
        record = {"test_result": {"glucose": {"value": "95", "unit": "mg/dL"}}}
        enhanced = enhance_vital_signs(record, vitals_text)
        results = enhanced["test_result"]
        assert results["glucose"] == {"value": "95", "unit": "mg/dL"}
        assert results["pulse"] == {"value": "88", "unit": "bpm"}
        assert results["systolic_blood_pressure"]["value"] == "136"
        assert results["diastolic_blood_pressure"]["value"] == "84"
        assert results["height"]["value"] == "184"

    def test_never_overwrites(self, vitals_text: str):
        record = {"test_result": {"pulse": {"value": "90", "unit": "bpm"}}}
        enhanced = enhance_vital_signs(record, vitals_text)
        assert enhanced["test_result"]["pulse"]["value"] == "90"

    def test_bmi_removed(self, vitals_text: str):
        record = {"test_result": {"bmi": {"value": "34.14", "unit": "kg/m2"}}}
        assert "bmi" not in enhance_vital_signs(record, vitals_text)["test_result"]

    def test_input_not_mutated(self, vitals_text: str):
        record = {"test_result": {}}
        enhance_vital_signs(record, vitals_text)
        assert record == {"test_result": {}}

    def test_clinical_narrative_kept(self, vitals_text: str):
        record = {"test_result": {}, "clinical_data": {"diagnosis": "Obesity"}}
        enhanced = enhance_vital_signs(record, vitals_text)
        assert enhanced["clinical_data"] == {"diagnosis": "Obesity"}

    def test_imaging_untouched(self, vitals_text: str):
        record = {"imaging_report": {"exam_type": "MRI"}}
        enhanced = enhance_vital_signs(record, vitals_text)
        assert enhanced == record
        assert enhanced is not record
