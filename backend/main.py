import logging

from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

import os  # noqa: E402
from typing import Dict, Optional  # noqa: E402

from fastapi import FastAPI, File, HTTPException, Response, UploadFile  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from pydantic import BaseModel  # noqa: E402

from form_filler import FormFillError, FormFillingService, IncomingFile, Settings  # noqa: E402
from form_filler.errors import (  # noqa: E402
    InvalidSelectionError,
    ParseError,
    RemoteServiceError,
    StoredFileNotFoundError,
    UploadValidationError,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings = Settings.from_env()

app = FastAPI(title="PDF Form Filler")
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

form_filling_service = FormFillingService(settings)


def _http_error(exc: FormFillError) -> HTTPException:
    if isinstance(exc, StoredFileNotFoundError):
        status = 404
    elif isinstance(exc, (ParseError, InvalidSelectionError, UploadValidationError)):
        status = 400
    elif isinstance(exc, RemoteServiceError):
        status = 502
    else:
        # MissingCredentialError and anything unclassified is a server-side problem
        status = 500
    logger.warning("Request failed (%d): %s", status, exc)
    return HTTPException(status_code=status, detail=str(exc))


async def _incoming(upload: Optional[UploadFile]) -> Optional[IncomingFile]:
    if upload is None:
        return None
    content = await upload.read()
    return IncomingFile(filename=upload.filename or "", content_type=upload.content_type, content=content)


class ParseCsvRequest(BaseModel):
    csv_path: str


class ParsePdfRequest(BaseModel):
    pdf_path: str


class ParseTextRequest(BaseModel):
    text: str


class FillFormRequest(BaseModel):
    pdf_path: str
    row_index: int
    csv_path: Optional[str] = None
    data_pdf_path: Optional[str] = None
    text_data: Optional[str] = None
    context: Optional[str] = None
    custom_mappings: Optional[Dict[str, str]] = None


@app.get("/health")
def health():
    return {
        "status": "ok",
        "message": "PDF Form Filler API is running",
        "api_key_configured": form_filling_service.api_key_configured,
    }


# --- Form filling endpoints ---------------------------------------------------


@app.post("/api/upload")
async def upload_files(
    pdf: Optional[UploadFile] = File(None),
    csv: Optional[UploadFile] = File(None),
    data_pdf: Optional[UploadFile] = File(None),
):
    try:
        return form_filling_service.upload(
            await _incoming(pdf),
            csv_file=await _incoming(csv),
            data_pdf=await _incoming(data_pdf),
        )
    except FormFillError as exc:
        raise _http_error(exc) from exc


@app.post("/api/parse-csv")
def parse_csv(req: ParseCsvRequest):
    if not req.csv_path:
        raise HTTPException(status_code=400, detail="CSV path is required")
    try:
        return form_filling_service.parse_csv(req.csv_path)
    except FormFillError as exc:
        raise _http_error(exc) from exc


@app.post("/api/parse-pdf")
def parse_pdf(req: ParsePdfRequest):
    if not req.pdf_path:
        raise HTTPException(status_code=400, detail="PDF path is required")
    try:
        return form_filling_service.parse_pdf(req.pdf_path)
    except FormFillError as exc:
        raise _http_error(exc) from exc


@app.post("/api/parse-text")
def parse_text(req: ParseTextRequest):
    try:
        return form_filling_service.parse_text(req.text)
    except FormFillError as exc:
        raise _http_error(exc) from exc


@app.post("/api/fill-form")
def fill_form(req: FillFormRequest):
    try:
        return form_filling_service.fill_form(
            req.pdf_path,
            req.row_index,
            csv_path=req.csv_path,
            data_pdf_path=req.data_pdf_path,
            text_data=req.text_data,
            context=req.context,
            custom_mappings=req.custom_mappings,
        )
    except FormFillError as exc:
        raise _http_error(exc) from exc


@app.get("/api/download/{filename}")
def download(filename: str):
    content = form_filling_service.get_output(filename)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type="application/pdf", headers=headers)


@app.get("/api/preview/{filename}")
def preview(filename: str):
    content = form_filling_service.get_output(filename)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    headers = {"Content-Disposition": f'inline; filename="{filename}"'}
    return Response(content=content, media_type="application/pdf", headers=headers)


if __name__ == "__main__":
    import uvicorn

    logger.info("API Key configured: %s", "Yes" if settings.has_api_key else "No")
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
