"""Record schemas: closed field sets per mode and the validation gate.

The prompts, the self-healing step and the merge engine all read their key
sets from here, so the three can never drift apart.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from errors import SchemaViolation
from models import Mode, TestResult

logger = logging.getLogger(__name__)

# Container key per record section
TEST_RESULT_KEY = "test_result"
CLINICAL_DATA_KEY = "clinical_data"
IMAGING_REPORT_KEY = "imaging_report"

VITAL_SIGN_NAMES: tuple[str, ...] = (
    "height",
    "weight",
    "bmi",
    "body_temperature",
    "pulse",
    "respiratory_rate",
    "blood_pressure",
    "systolic_blood_pressure",
    "diastolic_blood_pressure",
    "oxygen_saturation",
)

LAB_TEST_NAMES: tuple[str, ...] = VITAL_SIGN_NAMES + (
    # Complete blood count
    "white_blood_cell",
    "red_blood_cell",
    "hemoglobin",
    "hematocrit",
    "mean_corpuscular_volume",
    "mean_corpuscular_hemoglobin",
    "mean_corpuscular_hemoglobin_concentration",
    "red_cell_distribution_width",
    "platelet",
    "mean_platelet_volume",
    "neutrophil",
    "lymphocyte",
    "monocyte",
    "eosinophil",
    "basophil",
    "absolute_neutrophil_count",
    "absolute_lymphocyte_count",
    "reticulocyte",
    "erythrocyte_sedimentation_rate",
    # Metabolic panel
    "glucose",
    "fasting_glucose",
    "hemoglobin_a1c",
    "insulin",
    "blood_urea_nitrogen",
    "creatinine",
    "estimated_glomerular_filtration_rate",
    "uric_acid",
    "sodium",
    "potassium",
    "chloride",
    "carbon_dioxide",
    "calcium",
    "magnesium",
    "phosphorus",
    # Liver function
    "total_protein",
    "albumin",
    "globulin",
    "albumin_globulin_ratio",
    "total_bilirubin",
    "direct_bilirubin",
    "alkaline_phosphatase",
    "aspartate_aminotransferase",
    "alanine_aminotransferase",
    "gamma_glutamyl_transferase",
    "lactate_dehydrogenase",
    # Lipid panel
    "total_cholesterol",
    "hdl_cholesterol",
    "ldl_cholesterol",
    "non_hdl_cholesterol",
    "triglycerides",
    "cholesterol_hdl_ratio",
    # Thyroid
    "thyroid_stimulating_hormone",
    "free_t4",
    "free_t3",
    "total_t4",
    "total_t3",
    # Iron studies and vitamins
    "iron",
    "total_iron_binding_capacity",
    "transferrin_saturation",
    "ferritin",
    "vitamin_b12",
    "folate",
    "vitamin_d",
    # Inflammation and coagulation
    "c_reactive_protein",
    "high_sensitivity_c_reactive_protein",
    "prothrombin_time",
    "international_normalized_ratio",
    "activated_partial_thromboplastin_time",
    "fibrinogen",
    "d_dimer",
    # Cardiac and muscle
    "troponin",
    "creatine_kinase",
    "b_type_natriuretic_peptide",
    # Hormones and tumour markers
    "prostate_specific_antigen",
    "carcinoembryonic_antigen",
    "alpha_fetoprotein",
    "cortisol",
    "testosterone",
    "estradiol",
    # Urinalysis
    "urine_ph",
    "urine_specific_gravity",
    "urine_protein",
    "urine_glucose",
    "urine_ketones",
    "urine_blood",
    "urine_leukocyte_esterase",
    "urine_nitrite",
    "urine_albumin_creatinine_ratio",
    # Other
    "amylase",
    "lipase",
    "ammonia",
    "lactate",
    # Vision and hearing screening
    "left_vision",
    "right_vision",
    "left_hearing",
    "right_hearing",
)

# Common names models use instead of the canonical key
TEST_NAME_ALIASES: dict[str, str] = {
    "wbc": "white_blood_cell",
    "white_blood_cells": "white_blood_cell",
    "white_blood_cell_count": "white_blood_cell",
    "rbc": "red_blood_cell",
    "red_blood_cells": "red_blood_cell",
    "red_blood_cell_count": "red_blood_cell",
    "hgb": "hemoglobin",
    "hb": "hemoglobin",
    "hct": "hematocrit",
    "mcv": "mean_corpuscular_volume",
    "mch": "mean_corpuscular_hemoglobin",
    "mchc": "mean_corpuscular_hemoglobin_concentration",
    "rdw": "red_cell_distribution_width",
    "plt": "platelet",
    "platelets": "platelet",
    "platelet_count": "platelet",
    "mpv": "mean_platelet_volume",
    "esr": "erythrocyte_sedimentation_rate",
    "hba1c": "hemoglobin_a1c",
    "a1c": "hemoglobin_a1c",
    "bun": "blood_urea_nitrogen",
    "egfr": "estimated_glomerular_filtration_rate",
    "co2": "carbon_dioxide",
    "bicarbonate": "carbon_dioxide",
    "ast": "aspartate_aminotransferase",
    "sgot": "aspartate_aminotransferase",
    "alt": "alanine_aminotransferase",
    "sgpt": "alanine_aminotransferase",
    "alp": "alkaline_phosphatase",
    "ggt": "gamma_glutamyl_transferase",
    "ldh": "lactate_dehydrogenase",
    "cholesterol": "total_cholesterol",
    "hdl": "hdl_cholesterol",
    "ldl": "ldl_cholesterol",
    "tsh": "thyroid_stimulating_hormone",
    "ft4": "free_t4",
    "ft3": "free_t3",
    "tibc": "total_iron_binding_capacity",
    "crp": "c_reactive_protein",
    "hs_crp": "high_sensitivity_c_reactive_protein",
    "pt": "prothrombin_time",
    "inr": "international_normalized_ratio",
    "aptt": "activated_partial_thromboplastin_time",
    "ptt": "activated_partial_thromboplastin_time",
    "ck": "creatine_kinase",
    "bnp": "b_type_natriuretic_peptide",
    "psa": "prostate_specific_antigen",
    "cea": "carcinoembryonic_antigen",
    "afp": "alpha_fetoprotein",
    "vitamin_d_25_hydroxy": "vitamin_d",
    "temperature": "body_temperature",
    "temp": "body_temperature",
    "heart_rate": "pulse",
    "pulse_rate": "pulse",
    "hr": "pulse",
    "bp": "blood_pressure",
    "systolic": "systolic_blood_pressure",
    "diastolic": "diastolic_blood_pressure",
    "spo2": "oxygen_saturation",
    "o2_saturation": "oxygen_saturation",
    "oxygen_level": "oxygen_saturation",
    "resp_rate": "respiratory_rate",
    "body_mass_index": "bmi",
    "body_weight": "weight",
    "body_height": "height",
}

CLINICAL_DATA_FIELDS: dict[str, str] = {
    "document_type": "Type of clinical document (consultation note, discharge summary, ...)",
    "patient_name": "Patient name",
    "provider_name": "Healthcare provider name",
    "institution": "Healthcare institution or clinic",
    "visit_date": "Date of visit (yyyy-mm-dd format)",
    "chief_complaint": "Main reason for visit",
    "history_present_illness": "Current illness history",
    "physical_examination": "Physical exam findings",
    "assessment": "Clinical assessment",
    "diagnosis": "Primary and secondary diagnoses",
    "treatment_plan": "Treatment recommendations",
    "medications": "Prescribed medications",
    "follow_up": "Follow-up instructions",
    "imaging_findings": "Imaging results mentioned in the note",
    "lab_orders": "Laboratory tests ordered",
    "procedures": "Procedures performed",
    "vital_signs_narrative": "Vital signs in narrative form",
    "allergies_mentioned": "Allergies mentioned",
    "medical_history_mentioned": "Relevant medical history",
    "social_history": "Social history (smoking, alcohol, etc.)",
    "family_history": "Family history mentioned",
    "review_of_systems": "Review of systems",
    "clinical_notes": "Additional clinical observations",
    "discharge_instructions": "Discharge instructions",
    "return_precautions": "When to return for care",
    "summary": "Clinical summary",
}

IMAGING_REPORT_FIELDS: dict[str, str] = {
    "exam_type": "Type of imaging study (X-ray, MRI, CT, Ultrasound, etc.)",
    "body_part": "Body part or region examined",
    "exam_date": "Date of examination (yyyy-mm-dd format)",
    "clinical_information": "Clinical history, symptoms, reason for exam",
    "clinical_indication": "Medical indication or reason for the study",
    "technique": "Technical parameters, sequences, protocol",
    "contrast": "Contrast agent used (if any)",
    "findings": "Detailed radiological findings and observations",
    "bones": "Bone-related findings",
    "joints": "Joint-related findings",
    "soft_tissues": "Soft tissue findings",
    "organs": "Organ-specific findings",
    "vessels": "Vascular findings",
    "measurements": "Any measurements taken during the study",
    "dimensions": "Size measurements of structures or abnormalities",
    "impression": "Radiologist's impression or conclusion",
    "diagnosis": "Primary diagnosis or differential diagnoses",
    "recommendations": "Follow-up recommendations or additional studies needed",
    "follow_up": "Suggested follow-up timeline or actions",
    "comparison": "Comparison with previous studies",
    "prior_studies": "Reference to previous imaging studies",
    "limitations": "Study limitations or technical issues",
    "quality": "Image quality assessment",
    "artifacts": "Imaging artifacts noted",
    "cardiovascular": "Heart and vascular findings",
    "pulmonary": "Lung and respiratory findings",
    "gastrointestinal": "GI tract findings",
    "genitourinary": "Kidney, bladder, reproductive organ findings",
    "neurological": "Brain, spine, nerve findings",
    "musculoskeletal": "Bone, joint, muscle findings",
    "severity": "Severity assessment of findings",
    "urgency": "Urgency level or critical findings",
    "notes": "Additional notes or comments",
    "radiologist": "Reporting radiologist name",
    "patient_name": "Patient name",
}

_CLOSED = ConfigDict(extra="forbid")
_NARRATIVE = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

TestResultMap = create_model(
    "TestResultMap",
    __config__=_CLOSED,
    **{name: (Optional[TestResult], None) for name in LAB_TEST_NAMES},
)

ClinicalData = create_model(
    "ClinicalData",
    __config__=_NARRATIVE,
    **{name: (Optional[str], None) for name in CLINICAL_DATA_FIELDS},
)

ImagingReport = create_model(
    "ImagingReport",
    __config__=_NARRATIVE,
    **{name: (Optional[str], None) for name in IMAGING_REPORT_FIELDS},
)


class HealthCheckup(BaseModel):
    model_config = _CLOSED

    test_result: TestResultMap = Field(default_factory=TestResultMap)


class ClinicalHealthCheckup(BaseModel):
    model_config = _CLOSED

    test_result: TestResultMap = Field(default_factory=TestResultMap)
    clinical_data: Optional[ClinicalData] = None


class ImagingHealthCheckup(BaseModel):
    model_config = _CLOSED

    imaging_report: ImagingReport = Field(default_factory=ImagingReport)


SCHEMAS: dict[Mode, type[BaseModel]] = {
    Mode.LAB_RESULTS: HealthCheckup,
    Mode.CLINICAL_NOTES: ClinicalHealthCheckup,
    Mode.IMAGING_REPORT: ImagingHealthCheckup,
}

# Top-level containers per mode, primary container first
CONTAINERS: dict[Mode, tuple[str, ...]] = {
    Mode.LAB_RESULTS: (TEST_RESULT_KEY,),
    Mode.CLINICAL_NOTES: (TEST_RESULT_KEY, CLINICAL_DATA_KEY),
    Mode.IMAGING_REPORT: (IMAGING_REPORT_KEY,),
}

# Field names per container
FIELD_NAMES: dict[str, tuple[str, ...]] = {
    TEST_RESULT_KEY: LAB_TEST_NAMES,
    CLINICAL_DATA_KEY: tuple(CLINICAL_DATA_FIELDS),
    IMAGING_REPORT_KEY: tuple(IMAGING_REPORT_FIELDS),
}


def empty_record(mode: Mode) -> dict[str, Any]:
    """The valid record returned when a page yields nothing."""
    if mode is Mode.IMAGING_REPORT:
        return {IMAGING_REPORT_KEY: {}}
    if mode is Mode.CLINICAL_NOTES:
        return {TEST_RESULT_KEY: {}, CLINICAL_DATA_KEY: None}
    return {TEST_RESULT_KEY: {}}


def validate_record(candidate: Any, mode: Mode) -> dict[str, Any]:
    """Check a record against the mode's closed schema.

    Returns the record as plain JSON-compatible data, keeping only the keys
    that were present in the candidate. Raises SchemaViolation on unknown
    keys, bare scalar test values or wrong value types.
    """
    schema = SCHEMAS[mode]
    try:
        validated = schema.model_validate(candidate)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        logger.debug("Record failed %s schema: %s", mode.value, errors[:5])
        raise SchemaViolation(
            f"Record does not match the {mode.value} schema ({len(errors)} errors)",
            mode=mode.value,
            errors=errors,
        ) from e

    return validated.model_dump(mode="json", exclude_unset=True)
