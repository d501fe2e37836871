"""
Client for the Datalab form filling API.

The API is asynchronous: a POST to ``/fill`` returns a ``request_id`` and the
job is then polled at ``/fill/{request_id}`` until it reports a terminal
status. Completed jobs carry the filled PDF inline as base64 or as a URL.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

import requests

from .errors import (
    FillTimeoutError,
    MissingCredentialError,
    NoOutputError,
    RemoteDownloadError,
    RemoteFillFailedError,
    RemoteStatusError,
    RemoteSubmitError,
)
from .models import FieldDescriptor
from .polling import FILL_RETRY_POLICY, OCR_RETRY_POLICY, RetryPolicy, poll_until
from .text_parser import stringify_value

logger = logging.getLogger(__name__)

DATALAB_API_BASE = "https://www.datalab.to/api/v1"
CONFIDENCE_THRESHOLD = "0.5"

COMPLETE_STATUSES = frozenset({"complete", "completed", "finished"})
FAILED_STATUSES = frozenset({"failed", "error"})
OUTPUT_URL_KEYS = ("output_url", "output_file_url", "file_url", "download_url", "url")


class FillStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMEOUT = "timeout"


def classify_status(raw_status: Optional[str]) -> FillStatus:
    status = (raw_status or "").strip().lower()
    if status in COMPLETE_STATUSES:
        return FillStatus.COMPLETE
    if status in FAILED_STATUSES:
        return FillStatus.FAILED
    return FillStatus.PENDING


@dataclass
class FillJob:
    request_id: str
    status: FillStatus = FillStatus.PENDING
    result_bytes: Optional[bytes] = None
    fields_filled_count: int = 0
    error: Optional[str] = None
    last_response: Dict = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status != FillStatus.PENDING

    def apply(self, payload: Mapping) -> "FillJob":
        """Update the job from one status response."""
        self.last_response = dict(payload)
        self.status = classify_status(payload.get("status"))
        if self.status == FillStatus.FAILED:
            self.error = payload.get("error") or "Unknown error"
        return self


def _error_detail(exc: requests.RequestException) -> str:
    response = getattr(exc, "response", None)
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and (body.get("error") or body.get("detail")):
            return str(body.get("error") or body.get("detail"))
        if response.text:
            return response.text[:500]
    return str(exc)


def _filled_count(payload: Mapping) -> int:
    filled = payload.get("fields_filled")
    if isinstance(filled, list):
        return len(filled)
    count = payload.get("fields_filled_count") or payload.get("fieldsFilledCount") or 0
    try:
        return int(count)
    except (TypeError, ValueError):
        return 0


def detected_fields_to_mapping(detected) -> Dict[str, str]:
    """Flatten the detected-field shapes the API returns into key -> value."""
    fields: Dict[str, str] = {}
    if isinstance(detected, list):
        for item in detected:
            if not isinstance(item, dict):
                continue
            if item.get("name") and item.get("value"):
                fields[str(item["name"])] = stringify_value(item["value"])
                continue
            for key, value in item.items():
                if value and isinstance(value, str):
                    fields[str(key)] = value
    elif isinstance(detected, dict):
        for key, value in detected.items():
            text = stringify_value(value)
            if text:
                fields[str(key)] = text
    return fields


class DatalabClient:
    """Thin wrapper around the Datalab ``/fill`` endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DATALAB_API_BASE,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        fill_policy: RetryPolicy = FILL_RETRY_POLICY,
        ocr_policy: RetryPolicy = OCR_RETRY_POLICY,
    ):
        if not api_key:
            raise MissingCredentialError("DATALAB_API_KEY not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep
        self.fill_policy = fill_policy
        self.ocr_policy = ocr_policy

    def _headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key}

    # ------------------------------------------------------------------
    # Raw endpoints
    # ------------------------------------------------------------------
    def submit(
        self,
        document: bytes,
        field_data: Mapping[str, object],
        context: str = "",
        filename: str = "form.pdf",
        extra: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Start a fill job and return its request id."""
        payload = {
            key: value.to_dict() if isinstance(value, FieldDescriptor) else value
            for key, value in field_data.items()
        }
        data = {
            "field_data": json.dumps(payload),
            "confidence_threshold": CONFIDENCE_THRESHOLD,
            "skip_cache": "false",
        }
        if context:
            data["context"] = context
        if extra:
            data.update(extra)
        files = {"file": (filename, document, "application/pdf")}

        logger.info("Sending fill request with %d field(s) to %s", len(payload), self.base_url)
        try:
            response = self.session.post(
                f"{self.base_url}/fill",
                files=files,
                data=data,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            detail = _error_detail(exc)
            raise RemoteSubmitError(f"Datalab API error: {detail}", detail=detail) from exc
        except ValueError as exc:
            raise RemoteSubmitError("Datalab API returned a non-JSON response") from exc

        request_id = body.get("request_id") if isinstance(body, dict) else None
        if not request_id:
            detail = body.get("error") if isinstance(body, dict) else None
            raise RemoteSubmitError(f"Datalab API error: {detail or 'no request_id in response'}", detail=detail)
        logger.info("Fill request accepted: %s", request_id)
        return str(request_id)

    def poll(self, request_id: str) -> Dict:
        """Fetch the current status payload of a job."""
        try:
            response = self.session.get(
                f"{self.base_url}/fill/{request_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            detail = _error_detail(exc)
            raise RemoteStatusError(f"Status check error: {detail}", detail=detail) from exc
        except ValueError as exc:
            raise RemoteStatusError("Status check returned a non-JSON response") from exc
        return body if isinstance(body, dict) else {}

    def download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            detail = _error_detail(exc)
            raise RemoteDownloadError(f"Download error: {detail}", detail=detail) from exc
        return response.content

    # ------------------------------------------------------------------
    # Job handling
    # ------------------------------------------------------------------
    def _wait(self, request_id: str, policy: RetryPolicy) -> FillJob:
        job = FillJob(request_id=request_id)
        finished = poll_until(
            lambda: job.apply(self.poll(request_id)),
            lambda current: current.is_terminal,
            policy,
            sleep=self.sleep,
            label=f"request {request_id}",
        )
        if finished is None:
            job.status = FillStatus.TIMEOUT
        return job

    def await_result(self, request_id: str, policy: Optional[RetryPolicy] = None) -> FillJob:
        """
        Poll a fill job until it finishes and attach the output bytes.

        Raises:
            RemoteFillFailedError: the job reported a failure status.
            NoOutputError: the job completed without base64 data or a URL.
            FillTimeoutError: no terminal status within the retry policy.
        """
        policy = policy or self.fill_policy
        job = self._wait(request_id, policy)

        if job.status == FillStatus.TIMEOUT:
            raise FillTimeoutError(
                f"Timeout waiting for form filling to complete after {policy.max_attempts} attempts "
                f"(~{policy.max_wait_seconds:.0f}s)"
            )
        if job.status == FillStatus.FAILED:
            raise RemoteFillFailedError(f"Form filling failed: {job.error}", detail=job.error)

        status = job.last_response
        job.fields_filled_count = _filled_count(status)
        encoded = status.get("output_base64")
        if encoded:
            try:
                job.result_bytes = base64.b64decode(encoded)
            except (binascii.Error, ValueError) as exc:
                raise NoOutputError(f"Invalid base64 output for request {request_id}") from exc
            return job

        output_url = next((status[key] for key in OUTPUT_URL_KEYS if status.get(key)), None)
        if output_url:
            job.result_bytes = self.download(output_url)
            return job

        available = ", ".join(sorted(status.keys()))
        raise NoOutputError(f"No output data in completed response. Available fields: {available}")

    def fill(
        self,
        document: bytes,
        field_data: Mapping[str, object],
        context: str = "",
        filename: str = "form.pdf",
    ) -> FillJob:
        request_id = self.submit(document, field_data, context=context, filename=filename)
        return self.await_result(request_id)

    def read_fields(self, document: bytes, filename: str = "document.pdf") -> Dict[str, str]:
        """
        Ask the API to read a scanned or handwritten document.

        Submits the document with no field instructions and maps whatever
        detected fields come back. A failed or unfinished job reads as no
        fields; transport errors propagate.
        """
        request_id = self.submit(document, {}, filename=filename, extra={"extract_mode": "all"})
        job = self._wait(request_id, self.ocr_policy)
        if job.status != FillStatus.COMPLETE:
            logger.warning("Datalab OCR for %s ended with status %s: %s", request_id, job.status.value, job.error)
            return {}

        status = job.last_response
        detected = status.get("fields_filled") or status.get("detected_fields") or []
        fields = detected_fields_to_mapping(detected)
        logger.info("Datalab OCR completed. Fields detected: %d", len(fields))
        return fields
