"""Heuristic document classification from OCR text.

Keyword scoring, not a trained model. Anything that implements
``DocumentClassifier`` can replace it without touching prompts or merging.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from models import Mode

logger = logging.getLogger(__name__)

IMAGING_KEYWORDS: tuple[str, ...] = (
    "radiology", "radiologist", "radiograph", "imaging", "x-ray", "xray",
    "ct scan", "computed tomography", "mri", "magnetic resonance",
    "ultrasound", "sonograph", "mammogra", "pet scan", "fluoroscop",
    "angiogra", "doppler", "echocardiogra", "with contrast", "without contrast",
    "impression:", "findings:", "technique:", "comparison:", "prior studies",
    "axial", "sagittal", "coronal", "t1-weighted", "t2-weighted",
    "hounsfield", "opacity", "opacities", "nodule", "effusion", "fracture",
    "soft tissue", "unremarkable", "pa and lateral", "dicom",
)

CLINICAL_KEYWORDS: tuple[str, ...] = (
    "consultation", "visit", "examination", "assessment", "diagnosis",
    "treatment", "chief complaint", "history of present illness",
    "physical exam", "discharge", "follow-up", "medication", "prescription",
    "patient reports", "review of systems",
)

LAB_KEYWORDS: tuple[str, ...] = (
    "reference range", "result", "normal", "abnormal", "mg/dl", "mmol/l",
    "g/dl", "ng/ml", "u/l", "complete blood count", "cbc", "metabolic panel",
    "lipid panel", "hemoglobin", "glucose",
)

# Distinct imaging terms that settle the decision on their own
IMAGING_THRESHOLD = 3
CLINICAL_THRESHOLD = 3


class DocumentClassifier(Protocol):
    def classify(self, text: str) -> Mode: ...


@dataclass(frozen=True)
class KeywordScores:
    imaging: int
    clinical: int
    lab: int


def _score(text: str, lexicon: tuple[str, ...]) -> int:
    # Distinct terms present, not occurrences
    return sum(1 for term in lexicon if term in text)


class KeywordDocumentClassifier:
    """Scores OCR text against imaging, clinical and lab lexicons."""

    def __init__(
        self,
        imaging: tuple[str, ...] = IMAGING_KEYWORDS,
        clinical: tuple[str, ...] = CLINICAL_KEYWORDS,
        lab: tuple[str, ...] = LAB_KEYWORDS,
    ):
        self._imaging = imaging
        self._clinical = clinical
        self._lab = lab

    def scores(self, text: str) -> KeywordScores:
        lowered = (text or "").lower()
        return KeywordScores(
            imaging=_score(lowered, self._imaging),
            clinical=_score(lowered, self._clinical),
            lab=_score(lowered, self._lab),
        )

    def classify(self, text: str) -> Mode:
        s = self.scores(text)

        if s.imaging >= IMAGING_THRESHOLD or (s.imaging > 0 and s.imaging >= max(s.clinical, s.lab)):
            mode = Mode.IMAGING_REPORT
        elif s.clinical > s.lab or s.clinical >= CLINICAL_THRESHOLD:
            mode = Mode.CLINICAL_NOTES
        else:
            mode = Mode.LAB_RESULTS

        logger.info(
            "Document classified as %s (imaging=%d clinical=%d lab=%d)",
            mode.value, s.imaging, s.clinical, s.lab,
        )
        return mode


_default = KeywordDocumentClassifier()


def classify(text: str) -> Mode:
    return _default.classify(text)
