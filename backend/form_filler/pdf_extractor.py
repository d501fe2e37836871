"""
Document content extraction for filled PDFs used as a data source.

Extractors are tried in order and the first one whose result reaches its
confidence threshold wins:
  1. native form fields
  2. structural pairing of positioned text fragments
  3. line heuristics on the flattened text
  4. remote OCR through the Datalab API (only with an API key)

Whatever wins is shaped as a one-row TabularResult so the rest of the
pipeline does not care where the data came from.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .models import TabularResult
from .pdf_utils import extract_plain_text, extract_text_fragments, read_form_field_values
from .text_parser import match_line

logger = logging.getLogger(__name__)

FORM_FIELDS_MIN_FIELDS = 1
STRUCTURAL_TEXT_MIN_FIELDS = 6
TEXT_HEURISTIC_MIN_FIELDS = 6
REMOTE_OCR_MIN_FIELDS = 1

MIN_TEXT_LENGTH = 50
FALLBACK_MATCH_LIMIT = 50
MIN_LABEL_LENGTH = 3

NO_DATA_MESSAGE = "Could not extract data. PDF may be empty, encrypted, or have unrecognizable format."

FALLBACK_PATTERN = re.compile(
    r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s*[:\-]?\s*([A-Z0-9][A-Za-z0-9\s,.-]+)"
)


class ExtractionMethod(str, Enum):
    FORM_FIELDS = "form-fields"
    STRUCTURAL_TEXT = "structural-text"
    TEXT_HEURISTIC = "text-heuristic"
    REMOTE_OCR = "remote-ocr"
    NONE = "none"


@dataclass
class ExtractionOutcome:
    method: ExtractionMethod
    fields: Dict[str, str] = field(default_factory=dict)
    success: bool = True
    raw_text: Optional[str] = None
    message: Optional[str] = None

    @property
    def field_count(self) -> int:
        return len(self.fields)

    def to_tabular(self) -> TabularResult:
        return TabularResult.single_row(self.fields)


class Extractor(ABC):
    """One extraction strategy; `attempt` returns None when it has nothing."""

    method: ExtractionMethod
    min_fields: int = 1
    raw_text: Optional[str] = None

    @abstractmethod
    def attempt(self, document: bytes) -> Optional[Dict[str, str]]:
        raise NotImplementedError

    def is_confident(self, fields: Optional[Dict[str, str]]) -> bool:
        return bool(fields) and len(fields) >= self.min_fields


class FormFieldExtractor(Extractor):
    method = ExtractionMethod.FORM_FIELDS
    min_fields = FORM_FIELDS_MIN_FIELDS

    def attempt(self, document: bytes) -> Optional[Dict[str, str]]:
        return read_form_field_values(document) or None


def pair_fragments(texts: Sequence[str]) -> Dict[str, str]:
    """
    Pair adjacent text fragments into label/value guesses.

    A fragment ending in a colon is a label for the next fragment. Any other
    fragment of three or more characters is also stored as a label for its
    neighbour. Later pairs overwrite earlier ones with the same label.
    """
    fields: Dict[str, str] = {}
    for current, following in zip(texts, texts[1:]):
        label = current.strip()
        value = following.strip()
        if not value:
            continue
        if label.endswith(":"):
            name = label.replace(":", "", 1).strip()
            if name:
                fields[name] = value
        elif len(label) >= MIN_LABEL_LENGTH:
            fields[label] = value
    return fields


class StructuralTextExtractor(Extractor):
    method = ExtractionMethod.STRUCTURAL_TEXT
    min_fields = STRUCTURAL_TEXT_MIN_FIELDS

    def attempt(self, document: bytes) -> Optional[Dict[str, str]]:
        try:
            fragments = extract_text_fragments(document)
        except Exception as exc:
            logger.info("Structural text extraction failed: %s", exc)
            return None

        fields: Dict[str, str] = {}
        pages: Dict[int, List[str]] = {}
        for fragment in fragments:
            pages.setdefault(fragment.page, []).append(fragment.text)
        for page_number in sorted(pages):
            fields.update(pair_fragments(pages[page_number]))
        return fields or None


def parse_fields_from_text(text: str) -> Dict[str, str]:
    """
    Line-based key/value matching, then a capitalized-label scan when the
    lines gave nothing.
    """
    fields: Dict[str, str] = {}
    for line in text.split("\n"):
        matched = match_line(line)
        if matched:
            fields.update(matched)
    if fields:
        return fields

    for match in FALLBACK_PATTERN.finditer(text):
        if len(fields) >= FALLBACK_MATCH_LIMIT:
            break
        key = match.group(1).strip()
        value = match.group(2).strip()
        if key and value and key not in fields:
            fields[key] = value
    return fields


class TextHeuristicExtractor(Extractor):
    method = ExtractionMethod.TEXT_HEURISTIC
    min_fields = TEXT_HEURISTIC_MIN_FIELDS

    def attempt(self, document: bytes) -> Optional[Dict[str, str]]:
        text = extract_plain_text(document)
        self.raw_text = text
        logger.info("PDF parsed with text extraction. Text length: %d", len(text))
        if len(text) <= MIN_TEXT_LENGTH:
            return None
        return parse_fields_from_text(text) or None


class RemoteOcrExtractor(Extractor):
    method = ExtractionMethod.REMOTE_OCR
    min_fields = REMOTE_OCR_MIN_FIELDS

    def __init__(self, client):
        self.client = client

    def attempt(self, document: bytes) -> Optional[Dict[str, str]]:
        logger.info("Attempting Datalab OCR for handwritten/scanned content")
        return self.client.read_fields(document) or None


class DocumentExtractor:
    """Runs extractors in order until one is confident."""

    def __init__(self, extractors: Sequence[Extractor]):
        self.extractors = list(extractors)

    def extract(self, document: bytes) -> ExtractionOutcome:
        for extractor in self.extractors:
            fields = extractor.attempt(document)
            if extractor.is_confident(fields):
                logger.info("Extracted %d field(s) with %s", len(fields), extractor.method.value)
                return ExtractionOutcome(method=extractor.method, fields=dict(fields), raw_text=extractor.raw_text)
            logger.info(
                "%s yielded %d field(s), below threshold %d",
                extractor.method.value,
                len(fields or {}),
                extractor.min_fields,
            )

        logger.warning("No data could be extracted from PDF")
        return ExtractionOutcome(method=ExtractionMethod.NONE, message=NO_DATA_MESSAGE)


def build_document_extractor(ocr_client=None) -> DocumentExtractor:
    """Default extractor chain; remote OCR is appended only when a client is given."""
    extractors: List[Extractor] = [
        FormFieldExtractor(),
        StructuralTextExtractor(),
        TextHeuristicExtractor(),
    ]
    if ocr_client is not None:
        extractors.append(RemoteOcrExtractor(ocr_client))
    return DocumentExtractor(extractors)
