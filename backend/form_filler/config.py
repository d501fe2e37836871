"""
Runtime settings, read from the environment.

`main.py` loads `.env.local` and `.env` with python-dotenv before the
settings are built, so both real environment variables and dotenv files work.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .datalab_client import DATALAB_API_BASE
from .polling import FILL_RETRY_POLICY, OCR_RETRY_POLICY, RetryPolicy


def _env_list(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    upload_dir: Path = Path("./uploads")
    datalab_api_key: Optional[str] = None
    datalab_api_base: str = DATALAB_API_BASE
    request_timeout: float = 60
    max_upload_bytes: int = 10 * 1024 * 1024
    fill_policy: RetryPolicy = FILL_RETRY_POLICY
    ocr_policy: RetryPolicy = OCR_RETRY_POLICY
    output_cache_ttl: int = 3600
    s3_bucket: Optional[str] = None
    s3_prefix: str = "form-filler/"
    cors_origins: Tuple[str, ...] = ("*",)

    @property
    def has_api_key(self) -> bool:
        return bool(self.datalab_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            upload_dir=Path(os.getenv("FORM_FILLER_UPLOAD_DIR", "./uploads")),
            datalab_api_key=os.getenv("DATALAB_API_KEY") or None,
            datalab_api_base=os.getenv("DATALAB_API_BASE", DATALAB_API_BASE),
            request_timeout=float(os.getenv("DATALAB_REQUEST_TIMEOUT", "60")),
            max_upload_bytes=int(float(os.getenv("FORM_FILLER_MAX_UPLOAD_MB", "10")) * 1024 * 1024),
            fill_policy=RetryPolicy(
                max_attempts=int(os.getenv("FILL_MAX_ATTEMPTS", "90")),
                interval_seconds=float(os.getenv("FILL_POLL_INTERVAL", "3.0")),
            ),
            ocr_policy=RetryPolicy(
                max_attempts=int(os.getenv("OCR_MAX_ATTEMPTS", "60")),
                interval_seconds=float(os.getenv("OCR_POLL_INTERVAL", "3.0")),
            ),
            output_cache_ttl=int(os.getenv("OUTPUT_CACHE_TTL", "3600")),
            s3_bucket=os.getenv("FORM_FILLER_S3_BUCKET") or None,
            s3_prefix=os.getenv("FORM_FILLER_S3_PREFIX", "form-filler/"),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
        )
