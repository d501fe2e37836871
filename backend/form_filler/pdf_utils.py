"""
Low-level PDF utilities for reading data back out of filled documents.

pypdf handles AcroForm values and flattened text, PyMuPDF supplies text
spans with their page positions for the structural pairing heuristic.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping

import fitz  # PyMuPDF
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ParseError

logger = logging.getLogger(__name__)

# AcroForm field flags (PDF 32000-1, table 226)
RADIO_FLAG = 1 << 15
PUSHBUTTON_FLAG = 1 << 16


@dataclass(frozen=True)
class TextFragment:
    """One run of text and where it sits on its page."""

    page: int
    x: float
    y: float
    text: str


def _name_value(value) -> str:
    if value is None:
        return ""
    text = str(value)
    return text[1:] if text.startswith("/") else text


def form_field_value(field: Mapping) -> str:
    """
    Read the current value of one AcroForm field by its control type.

    Text fields give their string, checkboxes ``Yes``/``No``, radio groups the
    selected export value and choice fields the selected option(s) joined by
    a comma. Buttons, signatures and unknown types give an empty string.
    """
    field_type = field.get("/FT")
    value = field.get("/V")
    flags = int(field.get("/Ff", 0) or 0)

    if field_type == "/Tx":
        return "" if value is None else str(value)

    if field_type == "/Btn":
        if flags & PUSHBUTTON_FLAG:
            return ""
        selected = _name_value(value)
        if flags & RADIO_FLAG:
            return "" if selected in ("", "Off") else selected
        return "No" if selected in ("", "Off") else "Yes"

    if field_type == "/Ch":
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item) for item in value if item is not None)
        return "" if value is None else str(value)

    return ""


def read_form_field_values(document: bytes) -> Dict[str, str]:
    """
    Extract non-empty form field values from a fillable PDF.

    Fields that cannot be read are skipped; a document without a form, or
    one pypdf cannot open, yields an empty dict.
    """
    try:
        reader = PdfReader(io.BytesIO(document), strict=False)
        fields = reader.get_fields() or {}
    except Exception as exc:
        logger.info("Form field extraction failed: %s", exc)
        return {}

    values: Dict[str, str] = {}
    for name, field in fields.items():
        if "/FT" not in field:
            continue
        try:
            value = form_field_value(field).strip()
        except Exception as exc:
            logger.debug("Could not extract value for field %s: %s", name, exc)
            continue
        if value:
            values[name] = value
    return values


def extract_text_fragments(document: bytes) -> List[TextFragment]:
    """Return text spans in reading order, page by page."""
    fragments: List[TextFragment] = []
    with fitz.open(stream=document, filetype="pdf") as pdf_doc:
        for page_number, page in enumerate(pdf_doc):
            text_dict = page.get_text("dict")
            for block in text_dict.get("blocks", []):
                if block.get("type", 0) != 0:
                    continue
                for line in block.get("lines", []):
                    for span in line.get("spans", []):
                        text = span.get("text", "")
                        if not text.strip():
                            continue
                        x0, y0 = span.get("bbox", (0.0, 0.0, 0.0, 0.0))[:2]
                        fragments.append(TextFragment(page=page_number, x=x0, y=y0, text=text))
    return fragments


def extract_plain_text(document: bytes) -> str:
    """Flatten all page text into one string.

    Raises:
        ParseError: the bytes are not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(document), strict=False)
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError) as exc:
        raise ParseError(f"PDF read error: {exc}") from exc
    return "\n".join(pages)
