"""Prompt templates for vision-language extraction.

Nine templates: three document modes (lab results, clinical notes, imaging
report) times three modality combinations (text + image, text only, image
only). Each template fixes the exact JSON contract the merge step reads.
"""

from dataclasses import dataclass

from errors import InvalidModalityCombination
from models import Mode
from schema import CLINICAL_DATA_FIELDS, IMAGING_REPORT_FIELDS, LAB_TEST_NAMES

TEXT_MESSAGE = "This is the parsed text:\n{context}"


@dataclass(frozen=True)
class MessagePayload:
    """Per-page model input: OCR markdown and/or a base64 image data URL."""

    context: str | None = None
    image_data: str | None = None


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    mode: Mode
    instruction: str
    include_text: bool
    include_image: bool

    def render(self, payload: MessagePayload) -> list[dict]:
        """Build the chat messages for one page.

        Messages are backend-neutral dicts: ``{"role", "content"}`` plus an
        ``"image"`` data URL on the image message.
        """
        messages = [{"role": "user", "content": self.instruction}]
        if self.include_text:
            messages.append({
                "role": "user",
                "content": TEXT_MESSAGE.format(context=payload.context or ""),
            })
        if self.include_image:
            if not payload.image_data:
                raise ValueError(f"prompt {self.name} needs image_data")
            messages.append({"role": "user", "content": "", "image": payload.image_data})
        return messages


_TEST_NAMES = ", ".join(LAB_TEST_NAMES)

_TEST_RESULT_FORMAT = """**Critical Output Format Requirements:**
1.  The entire output MUST be a single JSON object.
2.  The JSON object MUST have a single top-level key named EXACTLY `test_result`.
3.  The value of `test_result` MUST be an object.
4.  Inside `test_result`, EVERY key MUST be the **snake_case** name of the test. Use snake_case ONLY. Do NOT use CamelCase or Title Case.
5.  The value for each test key MUST be an object with EXACTLY two keys: `value` (a string) and `unit` (a string or null), like {"value": "122", "unit": "mg/dL"}. Do NOT use plain numbers or strings as values.
6.  If no valid results are found, `test_result` MUST be an empty object.
7.  Use these test names where they apply: """ + _TEST_NAMES + "."

_VALUE_RULES = """**Value Validation Rules:**
1. Blood pressure values use the format "systolic/diastolic" (e.g. "136/84"). Also emit separate `systolic_blood_pressure` and `diastolic_blood_pressure` fields.
2. Temperature values include units (°C, °F), e.g. "36.1", "°C".
3. Oxygen saturation is numeric without the % symbol (e.g. "97").
4. Pulse/heart rate is numeric with "bpm" unit when available.
5. Height includes units (cm, ft/in); weight includes units (kg, lbs).
6. DO NOT extract BMI - it is calculated automatically from height and weight.
7. Lab values include their units (mg/dL, mmol/L, etc.). Extract only the result, never the reference range.
8. Dates use the yyyy-mm-dd format.
9. Keep asterisks or flags that mark a value (e.g. "H", "*") inside the value field.

**Vital Signs Pattern Recognition:**
- Look for patterns like "Temperature: X°C", "Pulse: X", "Blood Pressure: X/Y", "Oxygen Level: X%", "Height: X cm", "Weight: X kg".
- Extract these even from unstructured text, whatever the spacing, colons or unit position."""

_JSON_SUFFIX = """

CRITICAL OUTPUT RULES:
- Return ONLY a single valid JSON object. No other text before or after.
- Do NOT include any thinking, preamble, explanation, or markdown formatting.
- Do NOT wrap in code fences. Just raw JSON."""


def _field_list(fields: dict[str, str]) -> str:
    return "\n".join(f"- {name}: {description}" for name, description in fields.items())


LAB_BOTH = """You are a highly precise health data analyst. Your task is to extract test results from BOTH the parsed text and the image of one page of a health report, cross-validate them, and output them in a **strict JSON format**.

""" + _TEST_RESULT_FORMAT + """

**Step-by-Step Extraction and Validation Process:**
Step 1: Extract all test names, values and units from the image, then from the parsed text.
Step 2: Compare the two. If the parsed text shows OCR damage (broken numbers, strange characters), prefer the image for that test. If the image is unclear (blurry, cut off), prefer the parsed text.
Step 3: For multi-component tests (e.g. blood pressure) create separate snake_case keys. If tests are labeled left/right, put that into the key (e.g. `left_vision`).
Step 4: Remove duplicates, keeping the single most reliable value for each test.

**PDF-Specific Guidelines:**
1. For tables, keep the row/column association between test name, value and unit.
2. Values split across lines belong together.

""" + _VALUE_RULES + _JSON_SUFFIX

LAB_TEXT = """As a precise health data analyst, extract test results from the parsed text of one page of a health report.
Your primary goal is a JSON object that strictly follows the required format.

""" + _TEST_RESULT_FORMAT + """

**Extraction Guidelines:**
1. Extract only actual test results. Ignore reference ranges and unrelated numbers.
2. For multi-component tests create separate snake_case keys; put left/right labels into the key.
3. Avoid duplicate keys within `test_result`.

""" + _VALUE_RULES + _JSON_SUFFIX

LAB_IMAGE = """As a precise health data analyst, extract test results ONLY from the image of one page of a health report and format them as **strict JSON**.

""" + _TEST_RESULT_FORMAT + """

**Extraction Guidelines (Image Only):**
1. Read test names, values and units carefully; watch for misread digits.
2. Extract only actual test results, never reference ranges.
3. For multi-component tests create separate snake_case keys; put left/right labels into the key.
4. If a test appears more than once, keep the clearest reading.

""" + _VALUE_RULES + _JSON_SUFFIX

_CLINICAL_FORMAT = """**Critical Output Format Requirements:**
1. The entire output MUST be a single JSON object.
2. The JSON object MUST have TWO top-level keys: `test_result` and `clinical_data`.
3. `test_result` contains structured lab values/vital signs: snake_case keys, each an object {"value": string, "unit": string or null}.
4. `clinical_data` contains the clinical narrative, using ONLY these string fields (null when absent):
""" + _field_list(CLINICAL_DATA_FIELDS) + """
5. If no clinical data is found, `clinical_data` MUST be null.
6. If no test results are found, `test_result` MUST be an empty object.
7. DO NOT extract BMI - it is calculated automatically from height and weight."""

CLINICAL_BOTH = """You are a medical records analyst extracting structured information from a clinical document. Use BOTH the parsed text and the image of the page.

""" + _CLINICAL_FORMAT + """

**Step-by-Step Process:**
1. Extract structured test results (lab values, vital signs) into `test_result`.
2. Extract the clinical narrative into `clinical_data`.
3. Cross-validate between text and image; prefer clear, complete information.
4. Preserve medical terminology and clinical context.""" + _JSON_SUFFIX

CLINICAL_TEXT = """As a medical records analyst, extract both structured test results and clinical information from the parsed text of a medical document.

""" + _CLINICAL_FORMAT + """

**Extract both test results AND clinical narrative data when present.**""" + _JSON_SUFFIX

CLINICAL_IMAGE = """As a medical records analyst, extract both structured test results and clinical information from the image of a medical document.

""" + _CLINICAL_FORMAT + """

**Be careful with handwriting and OCR-like misreadings; prefer clear, readable information.**""" + _JSON_SUFFIX

_IMAGING_FORMAT = """**Critical Output Format Requirements:**
1. The entire output MUST be a single JSON object.
2. The JSON object MUST have a single top-level key named EXACTLY `imaging_report`.
3. The value of `imaging_report` MUST be an object with EXACTLY these snake_case fields, each a string or null:
""" + _field_list(IMAGING_REPORT_FIELDS) + """
4. If a field is not found, set it to null.
5. DO NOT extract lab values, vital signs, or blood pressure - this is an imaging report, not lab results."""

IMAGING_BOTH = """You are a specialized medical imaging analyst. Extract structured information from a radiology report (X-ray, MRI, CT, Ultrasound, etc.) using BOTH the parsed text and the image of the page.

""" + _IMAGING_FORMAT + """

**Extraction Guidelines:**
1. Cross-validate between text and image; prefer clear, complete information.
2. Keep measurements with their units and anatomical references.
3. Distinguish normal from abnormal findings and flag critical findings under `urgency`.
4. Note technical limitations or artifacts.""" + _JSON_SUFFIX

IMAGING_TEXT = """As a medical imaging analyst, extract structured information from the parsed text of an imaging report.

""" + _IMAGING_FORMAT + """

**Focus on the radiologist's findings, impression and recommendations.**""" + _JSON_SUFFIX

IMAGING_IMAGE = """As a medical imaging analyst, extract structured information from the image of an imaging report.

""" + _IMAGING_FORMAT + """

**Be especially careful with:**
- Medical terminology and abbreviations
- Numerical measurements and their units
- Anatomical references and locations
- Critical or urgent findings""" + _JSON_SUFFIX


def _template(name: str, mode: Mode, instruction: str, text: bool, image: bool) -> PromptTemplate:
    return PromptTemplate(name=name, mode=mode, instruction=instruction, include_text=text, include_image=image)


# (mode, include_text, include_image) -> template
PROMPTS: dict[tuple[Mode, bool, bool], PromptTemplate] = {
    (Mode.LAB_RESULTS, True, True): _template("lab_both", Mode.LAB_RESULTS, LAB_BOTH, True, True),
    (Mode.LAB_RESULTS, True, False): _template("lab_text", Mode.LAB_RESULTS, LAB_TEXT, True, False),
    (Mode.LAB_RESULTS, False, True): _template("lab_image", Mode.LAB_RESULTS, LAB_IMAGE, False, True),
    (Mode.CLINICAL_NOTES, True, True): _template("clinical_both", Mode.CLINICAL_NOTES, CLINICAL_BOTH, True, True),
    (Mode.CLINICAL_NOTES, True, False): _template("clinical_text", Mode.CLINICAL_NOTES, CLINICAL_TEXT, True, False),
    (Mode.CLINICAL_NOTES, False, True): _template("clinical_image", Mode.CLINICAL_NOTES, CLINICAL_IMAGE, False, True),
    (Mode.IMAGING_REPORT, True, True): _template("imaging_both", Mode.IMAGING_REPORT, IMAGING_BOTH, True, True),
    (Mode.IMAGING_REPORT, True, False): _template("imaging_text", Mode.IMAGING_REPORT, IMAGING_TEXT, True, False),
    (Mode.IMAGING_REPORT, False, True): _template("imaging_image", Mode.IMAGING_REPORT, IMAGING_IMAGE, False, True),
}


def select_prompt(exclude_image: bool, exclude_text: bool, mode: Mode) -> PromptTemplate:
    if exclude_image and exclude_text:
        raise InvalidModalityCombination(
            "At least one of text or image must be included",
            exclude_image=exclude_image,
            exclude_text=exclude_text,
        )
    return PROMPTS[(mode, not exclude_text, not exclude_image)]
