"""
Exception hierarchy for the form filling service.

Every error raised on purpose by the package derives from `FormFillError`, so
the FastAPI layer can translate it into a single error message for the
client.
"""

from __future__ import annotations

from typing import Optional


class FormFillError(RuntimeError):
    """Domain-specific exception for service errors."""


class ParseError(FormFillError):
    """Malformed tabular, text or document input."""


class InvalidSelectionError(FormFillError):
    """Requested row index is outside the parsed data."""


class MissingCredentialError(FormFillError):
    """A remote call was requested without a configured API key."""


class UploadValidationError(FormFillError):
    """Uploaded files do not match what the upload endpoint accepts."""


class StoredFileNotFoundError(FormFillError):
    """A referenced upload or output file does not exist in the store."""


class RemoteServiceError(FormFillError):
    """Failure talking to the remote fill API.

    `detail` carries the upstream error message when the API returned one.
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class RemoteSubmitError(RemoteServiceError):
    pass


class RemoteStatusError(RemoteServiceError):
    pass


class RemoteFillFailedError(RemoteServiceError):
    pass


class NoOutputError(RemoteServiceError):
    pass


class RemoteDownloadError(RemoteServiceError):
    pass


class FillTimeoutError(RemoteServiceError, TimeoutError):
    """No terminal job status was seen within the retry policy."""
