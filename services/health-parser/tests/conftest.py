"""Shared test fixtures for health parser tests."""

import json
import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import ModelInfo  # noqa: E402
from vision_client import VisionClient  # noqa: E402

VITALS_TEXT = (
    "Vital Signs03/03/2025 11:33Temperature: Pulse: 88Blood Pressure: 136/84"
    "Oxygen Level: 97%Tympanic - 36.1 °C (97 °F);Height: 184 cm (6 ft 0 in)"
    "Weight: 115.6 kg (254 lbs 14 oz)Body Mass Index (BMI): 34.14 kg/m2"
)


class FakeVisionClient(VisionClient):
    """In-memory vision backend.

    ``responder(messages)`` returns the raw model text or raises.
    """

    name = "Fake"

    def __init__(self, responder, models: list[str] | None = None, resource_constrained: bool = False):
        self._responder = responder
        self._models = models if models is not None else ["fake-vision"]
        self.resource_constrained = resource_constrained
        self.calls: list[list[dict]] = []
        self.health_checks = 0

    async def models(self, api_url=None, api_key=""):
        return [ModelInfo(id=m, name=m) for m in self._models]

    async def health_check(self, model, api_url=None, api_key="", timeout=None):
        from errors import ModelNotFound

        self.health_checks += 1
        if model not in self._models:
            raise ModelNotFound(f"Model {model} is not available", model=model)

    async def chat(self, model, messages, api_key="", api_url=None):
        self.calls.append(messages)
        result = self._responder(messages)
        if hasattr(result, "__await__"):
            result = await result
        return result


@pytest.fixture
def sample_image_bytes() -> bytes:
    """Generate a minimal valid JPEG image for testing."""
    import cv2

    # Create a 200x300 image with some text-like features
    img = np.zeros((300, 200, 3), dtype=np.uint8)
    img[:] = (240, 240, 240)  # Light gray background

    # Add some dark rectangles to simulate text regions
    cv2.rectangle(img, (20, 30), (180, 50), (30, 30, 30), -1)
    cv2.rectangle(img, (20, 70), (160, 90), (30, 30, 30), -1)
    cv2.rectangle(img, (20, 110), (140, 130), (30, 30, 30), -1)

    _, buf = cv2.imencode(".jpg", img, [cv2.IMWRITE_JPEG_QUALITY, 90])
    return buf.tobytes()


@pytest.fixture
def large_image_bytes() -> bytes:
    """Generate a larger image that will trigger resize."""
    import cv2

    img = np.zeros((2000, 3000, 3), dtype=np.uint8)
    img[:] = (200, 200, 200)
    _, buf = cv2.imencode(".jpg", img)
    return buf.tobytes()


@pytest.fixture
def invalid_bytes() -> bytes:
    """Neither a PDF nor a decodable image."""
    return b"this is not an image file at all"


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """A 3-page PDF with one line of text per page."""
    import fitz  # PyMuPDF

    doc = fitz.open()
    for i in range(3):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), f"Lab report page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def vitals_text() -> str:
    """OCR text of a vital-signs panel, as docling returns it (no separators)."""
    return VITALS_TEXT


@pytest.fixture
def mock_lab_response() -> str:
    """Mock model response for a lab results page."""
    return json.dumps({
        "test_result": {
            "hemoglobin": {"value": "13.5", "unit": "g/dL"},
            "glucose": {"value": "122", "unit": "mg/dL"},
            "white_blood_cell": {"value": "6.1", "unit": "10^3/uL"},
        },
    })


@pytest.fixture
def mock_markdown_response() -> str:
    """Mock model response wrapped in markdown code fence."""
    return '```json\n{"test_result": {"glucose": {"value": "95", "unit": "mg/dL"}}}\n```'


@pytest.fixture
def mock_preamble_response() -> str:
    """Mock model response with text before JSON."""
    return 'Here is the extracted data:\n\n{"test_result": {"glucose": {"value": "95", "unit": "mg/dL"}}}'


@pytest.fixture
def fake_vision():
    """Factory for FakeVisionClient."""
    return FakeVisionClient
