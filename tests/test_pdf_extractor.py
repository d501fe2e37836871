import itertools

import fitz
import pytest
from pypdf.generic import ArrayObject, NameObject, NumberObject, TextStringObject

from form_filler.errors import ParseError
from form_filler.pdf_extractor import (
    DocumentExtractor,
    FALLBACK_MATCH_LIMIT,
    ExtractionMethod,
    Extractor,
    RemoteOcrExtractor,
    STRUCTURAL_TEXT_MIN_FIELDS,
    StructuralTextExtractor,
    TEXT_HEURISTIC_MIN_FIELDS,
    TextHeuristicExtractor,
    build_document_extractor,
    pair_fragments,
    parse_fields_from_text,
)
from form_filler.pdf_utils import RADIO_FLAG, form_field_value, read_form_field_values

LABELLED_LINES = [
    "Name:",
    "Jane Doe",
    "Email:",
    "jane@example.com",
    "City:",
    "Berlin",
    "Country:",
    "Germany",
]


def make_pdf(lines=(), text_fields=()):
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for text in lines:
        page.insert_text((72, y), text, fontsize=11)
        y += 24
    for name, value in text_fields:
        widget = fitz.Widget()
        widget.field_name = name
        widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        widget.field_value = value
        widget.rect = fitz.Rect(300, y, 520, y + 18)
        page.add_widget(widget)
        y += 24
    data = doc.tobytes()
    doc.close()
    return data


class StaticExtractor(Extractor):
    def __init__(self, method, fields, min_fields=1):
        self.method = method
        self.fields = fields
        self.min_fields = min_fields
        self.calls = 0

    def attempt(self, document):
        self.calls += 1
        return self.fields


def test_form_field_value_by_control_type():
    assert form_field_value({"/FT": "/Tx", "/V": TextStringObject("Jane")}) == "Jane"
    assert form_field_value({"/FT": "/Btn", "/V": NameObject("/Yes")}) == "Yes"
    assert form_field_value({"/FT": "/Btn", "/V": NameObject("/Off")}) == "No"
    assert form_field_value({"/FT": "/Btn"}) == "No"
    radio = {"/FT": "/Btn", "/Ff": NumberObject(RADIO_FLAG), "/V": NameObject("/Express")}
    assert form_field_value(radio) == "Express"
    choice = {"/FT": "/Ch", "/V": ArrayObject([TextStringObject("EUR"), TextStringObject("USD")])}
    assert form_field_value(choice) == "EUR, USD"
    assert form_field_value({"/FT": "/Sig"}) == ""


def test_read_form_field_values_from_fillable_pdf():
    document = make_pdf(text_fields=[("first_name", "Jane"), ("zip_code", "10115"), ("empty", "")])
    values = read_form_field_values(document)

    assert values["first_name"] == "Jane"
    assert values["zip_code"] == "10115"
    assert "empty" not in values


def test_pair_fragments():
    fields = pair_fragments(["Name:", "Jane", "Invoice No", "4711", "ab", "skipped", "Name:", "John"])

    assert fields["Name"] == "John"
    assert fields["Invoice No"] == "4711"
    assert fields["Jane"] == "Invoice No"
    assert "ab" not in fields


def test_structural_text_extraction_from_positioned_text():
    outcome = build_document_extractor().extract(make_pdf(lines=LABELLED_LINES))

    assert outcome.method == ExtractionMethod.STRUCTURAL_TEXT
    assert outcome.fields["Name"] == "Jane Doe"
    assert outcome.fields["Country"] == "Germany"
    assert outcome.field_count > 5


def test_form_fields_win_over_structural_text():
    document = make_pdf(lines=LABELLED_LINES, text_fields=[("iban", "DE89370400440532013000")])
    outcome = build_document_extractor().extract(document)

    assert outcome.method == ExtractionMethod.FORM_FIELDS
    assert outcome.fields == {"iban": "DE89370400440532013000"}
    table = outcome.to_tabular()
    assert table.row_count == 1
    assert table.headers == ["iban"]


def test_blank_pdf_yields_no_fields():
    outcome = build_document_extractor().extract(make_pdf())

    assert outcome.method == ExtractionMethod.NONE
    assert outcome.success is True
    assert outcome.field_count == 0
    assert outcome.message
    assert outcome.to_tabular().rows == [{}]


def test_unreadable_document_raises_parse_error():
    with pytest.raises(ParseError):
        build_document_extractor().extract(b"this is not a pdf at all")


def test_chain_stops_at_first_confident_extractor():
    first = StaticExtractor(ExtractionMethod.FORM_FIELDS, None)
    second = StaticExtractor(ExtractionMethod.STRUCTURAL_TEXT, {str(i): "v" for i in range(3)}, min_fields=6)
    third = StaticExtractor(ExtractionMethod.TEXT_HEURISTIC, {str(i): "v" for i in range(6)}, min_fields=6)
    fourth = StaticExtractor(ExtractionMethod.REMOTE_OCR, {"a": "b"})

    outcome = DocumentExtractor([first, second, third, fourth]).extract(b"")

    assert outcome.method == ExtractionMethod.TEXT_HEURISTIC
    assert outcome.field_count == 6
    assert fourth.calls == 0


def test_remote_ocr_is_last_resort():
    class FakeOcrClient:
        def __init__(self):
            self.documents = []

        def read_fields(self, document):
            self.documents.append(document)
            return {"Name": "Jane Doe"}

    client = FakeOcrClient()
    chain = DocumentExtractor(
        [StaticExtractor(ExtractionMethod.FORM_FIELDS, {}), RemoteOcrExtractor(client)]
    )
    outcome = chain.extract(b"%PDF scanned")

    assert outcome.method == ExtractionMethod.REMOTE_OCR
    assert outcome.fields == {"Name": "Jane Doe"}
    assert client.documents == [b"%PDF scanned"]


def test_ocr_is_not_in_default_chain_without_client():
    methods = [extractor.method for extractor in build_document_extractor().extractors]
    assert ExtractionMethod.REMOTE_OCR not in methods
    methods = [extractor.method for extractor in build_document_extractor(object()).extractors]
    assert methods[-1] == ExtractionMethod.REMOTE_OCR


def test_parse_fields_from_text_uses_line_matchers():
    text = "Name: Jane Doe\nCity = Berlin\nZip | 10115"
    assert parse_fields_from_text(text) == {"Name": "Jane Doe", "City": "Berlin", "Zip": "10115"}


def test_parse_fields_from_text_capitalized_fallback():
    fields = parse_fields_from_text("Reference ABC123; Applicant Jane Doe")
    assert fields == {"Reference": "ABC123", "Applicant Jane": "Doe"}


def test_capitalized_fallback_is_capped():
    keys = [f"K{a}{b}" for a, b in itertools.product("abcdefgh", repeat=2)]
    text = "; ".join(f"{key} {i:02d}" for i, key in enumerate(keys))

    fields = parse_fields_from_text(text)
    assert len(fields) == FALLBACK_MATCH_LIMIT
    assert fields["Kaa"] == "00"
    assert fields[keys[FALLBACK_MATCH_LIMIT - 1]] == f"{FALLBACK_MATCH_LIMIT - 1:02d}"
    assert keys[FALLBACK_MATCH_LIMIT] not in fields


def test_text_heuristic_ignores_short_text(monkeypatch):
    import form_filler.pdf_extractor as extractor_module

    monkeypatch.setattr(extractor_module, "extract_plain_text", lambda document: "Name: Jane")
    assert TextHeuristicExtractor().attempt(b"%PDF") is None

    long_text = "\n".join(f"Field {i}: value {i}" for i in range(8))
    monkeypatch.setattr(extractor_module, "extract_plain_text", lambda document: long_text)
    fields = TextHeuristicExtractor().attempt(b"%PDF")
    assert len(fields) == 8


def test_text_heuristic_outcome_keeps_raw_text(monkeypatch):
    import form_filler.pdf_extractor as extractor_module

    long_text = "\n".join(f"Field {i}: value {i}" for i in range(8))
    monkeypatch.setattr(extractor_module, "extract_plain_text", lambda document: long_text)

    outcome = DocumentExtractor([TextHeuristicExtractor()]).extract(b"%PDF")
    assert outcome.method == ExtractionMethod.TEXT_HEURISTIC
    assert outcome.raw_text == long_text


def test_five_text_fields_fall_through_to_next_method():
    five = {f"Field {i}": "value" for i in range(5)}

    class FiveStructural(StructuralTextExtractor):
        def attempt(self, document):
            return dict(five)

    class FiveHeuristic(TextHeuristicExtractor):
        def attempt(self, document):
            return dict(five)

    ocr = StaticExtractor(ExtractionMethod.REMOTE_OCR, {"Name": "Jane"})
    outcome = DocumentExtractor([FiveStructural(), FiveHeuristic(), ocr]).extract(b"")

    assert STRUCTURAL_TEXT_MIN_FIELDS == TEXT_HEURISTIC_MIN_FIELDS == 6
    assert outcome.method == ExtractionMethod.REMOTE_OCR
    assert ocr.calls == 1
    assert outcome.raw_text is None

    six = dict(five, Extra="value")
    assert FiveStructural().is_confident(six)
    assert not FiveHeuristic().is_confident(five)
