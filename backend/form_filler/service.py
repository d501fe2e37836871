"""
High-level service that exposes form filling to the FastAPI layer.

Responsibilities
----------------
* accept and validate uploads (template PDF plus CSV, filled PDF or nothing)
* parse the chosen data source into rows and suggest field descriptions
* convert one selected row into field data and fill the template remotely
* store filled PDFs and serve them back for download or preview
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .config import Settings
from .csv_parser import parse_csv
from .datalab_client import DatalabClient
from .errors import UploadValidationError
from .field_mappings import FieldMapper, field_data_to_payload
from .models import DataSourceKind, TabularResult
from .pdf_extractor import build_document_extractor
from .storage import FileStore
from .text_parser import parse_text

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = {"application/pdf"}
CSV_CONTENT_TYPES = {"text/csv"}


@dataclass(frozen=True)
class IncomingFile:
    """An uploaded file as received by the HTTP layer."""

    filename: str
    content_type: Optional[str]
    content: bytes


class FormFillingService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[FileStore] = None,
        mapper: Optional[FieldMapper] = None,
        client_factory: Optional[Callable[[], DatalabClient]] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.store = store or FileStore(
            self.settings.upload_dir,
            s3_bucket=self.settings.s3_bucket,
            s3_prefix=self.settings.s3_prefix,
            cache_ttl=self.settings.output_cache_ttl,
        )
        self.mapper = mapper or FieldMapper()
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> DatalabClient:
        return DatalabClient(
            self.settings.datalab_api_key,
            base_url=self.settings.datalab_api_base,
            timeout=self.settings.request_timeout,
            fill_policy=self.settings.fill_policy,
            ocr_policy=self.settings.ocr_policy,
        )

    @property
    def api_key_configured(self) -> bool:
        return self.settings.has_api_key

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def _validate(self, field_name: str, upload: IncomingFile, allowed_types: set, extension: str) -> None:
        name = upload.filename or ""
        if upload.content_type not in allowed_types and not name.lower().endswith(extension):
            label = "CSV" if extension == ".csv" else "PDF"
            raise UploadValidationError(f"Only {label} files are allowed for {field_name} field")
        if len(upload.content) > self.settings.max_upload_bytes:
            limit_mb = self.settings.max_upload_bytes // (1024 * 1024)
            raise UploadValidationError(f"File '{name}' exceeds the {limit_mb} MB upload limit")

    def upload(
        self,
        template: Optional[IncomingFile],
        csv_file: Optional[IncomingFile] = None,
        data_pdf: Optional[IncomingFile] = None,
    ) -> Dict:
        """Store the template and at most one data file; report the data source kind."""
        if template is None:
            raise UploadValidationError("PDF form file is required")
        if csv_file is not None and data_pdf is not None:
            raise UploadValidationError("Upload either a CSV file or a data PDF, not both")

        self._validate("pdf", template, PDF_CONTENT_TYPES, ".pdf")
        if csv_file is not None:
            self._validate("csv", csv_file, CSV_CONTENT_TYPES, ".csv")
        if data_pdf is not None:
            self._validate("data_pdf", data_pdf, PDF_CONTENT_TYPES, ".pdf")

        files = {"pdf": self.store.save_upload("pdf", template.filename, template.content).to_dict()}
        if csv_file is not None:
            files["csv"] = self.store.save_upload("csv", csv_file.filename, csv_file.content).to_dict()
            data_type = DataSourceKind.CSV
        elif data_pdf is not None:
            files["data_pdf"] = self.store.save_upload("data_pdf", data_pdf.filename, data_pdf.content).to_dict()
            data_type = DataSourceKind.PDF
        else:
            data_type = DataSourceKind.TEXT

        logger.info("Upload stored: %s (data type %s)", ", ".join(files), data_type.value)
        return {"success": True, "files": files, "data_type": data_type.value}

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------
    def _load_csv(self, csv_path: str) -> TabularResult:
        return parse_csv(self.store.resolve(csv_path))

    def _load_pdf(self, pdf_path: str):
        document = self.store.read(pdf_path)
        ocr_client = self._client_factory() if self.api_key_configured else None
        return build_document_extractor(ocr_client).extract(document)

    def parse_csv(self, csv_path: str) -> Dict:
        data = self._load_csv(csv_path)
        return {
            "success": True,
            "data": data.to_dict(),
            "field_mappings": self.mapper.generate_mapping(data.headers, DataSourceKind.CSV),
        }

    def parse_pdf(self, pdf_path: str) -> Dict:
        outcome = self._load_pdf(pdf_path)
        data = outcome.to_tabular()
        result = {
            "success": True,
            "data": data.to_dict(),
            "field_mappings": self.mapper.generate_mapping(data.headers, DataSourceKind.PDF),
            "extracted_field_count": outcome.field_count,
            "method": outcome.method.value,
        }
        if outcome.message:
            result["message"] = outcome.message
        return result

    def parse_text(self, text: str) -> Dict:
        if not text or not text.strip():
            raise UploadValidationError("Text data is required")
        data = parse_text(text)
        return {
            "success": True,
            "data": data.to_dict(),
            "field_mappings": self.mapper.generate_mapping(data.headers, DataSourceKind.TEXT),
            "extracted_field_count": len(data.headers),
        }

    # ------------------------------------------------------------------
    # Filling
    # ------------------------------------------------------------------
    def fill_form(
        self,
        pdf_path: str,
        row_index: int,
        csv_path: Optional[str] = None,
        data_pdf_path: Optional[str] = None,
        text_data: Optional[str] = None,
        context: Optional[str] = None,
        custom_mappings: Optional[Mapping[str, str]] = None,
    ) -> Dict:
        if not pdf_path:
            raise UploadValidationError("PDF path is required")
        if not (csv_path or data_pdf_path or text_data):
            raise UploadValidationError("Either CSV path, data PDF path, or text data is required")

        template_path = self.store.resolve(pdf_path)

        if text_data:
            logger.info("Using manual text input")
            parsed = parse_text(text_data)
        elif csv_path:
            logger.info("Using CSV file")
            parsed = self._load_csv(csv_path)
        else:
            logger.info("Using PDF file")
            parsed = self._load_pdf(data_pdf_path).to_tabular()

        selected_row = parsed.select(row_index)
        client = self._client_factory()
        field_data = self.mapper.to_field_data(selected_row, custom_mappings)
        logger.info("Processing form fill for row %d with %d field(s)", row_index, len(field_data))

        with template_path.open("rb") as f:
            template_bytes = f.read()
        job = client.fill(
            template_bytes,
            field_data_to_payload(field_data),
            context=context or "",
            filename=template_path.name,
        )

        stored = self.store.save_output(job.result_bytes or b"")
        logger.info("Form filling completed: %s (%d fields filled)", stored.filename, job.fields_filled_count)
        return {
            "success": True,
            "filled_pdf_path": stored.path,
            "filled_pdf_filename": stored.filename,
            "fields_filled_count": job.fields_filled_count,
            "request_id": job.request_id,
        }

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    def get_output(self, filename: str) -> Optional[bytes]:
        return self.store.load_output(filename)
