"""
File storage for uploaded inputs and filled outputs.

Everything lives under one root directory with generated unique names.
Filled PDFs are additionally kept in a small TTL cache and, when a bucket is
configured, mirrored to S3 so another instance can serve the download.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cachetools import TTLCache

from .errors import StoredFileNotFoundError
from .models import StoredFile

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "filled"


def _unique_name(prefix: str, extension: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}{extension}"


class FileStore:
    def __init__(
        self,
        root: Union[str, Path],
        s3_bucket: Optional[str] = None,
        s3_prefix: str = "form-filler/",
        s3_client=None,
        cache_ttl: int = 3600,
        cache_size: int = 128,
    ):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

        self.s3_bucket = s3_bucket
        self.s3_prefix = s3_prefix
        self.s3 = s3_client
        if self.s3_bucket and self.s3 is None:
            self.s3 = boto3.client("s3")

        self._output_cache: TTLCache = TTLCache(maxsize=cache_size, ttl=cache_ttl)
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    def save_upload(self, field_name: str, original_name: str, content: bytes) -> StoredFile:
        extension = Path(original_name or "").suffix.lower()
        filename = _unique_name(field_name, extension)
        target = self.root / filename
        with target.open("wb") as f:
            f.write(content)
        logger.info("Stored upload %s as %s (%d bytes)", original_name, filename, len(content))
        return StoredFile(filename=filename, original_name=original_name or filename, path=str(target), size=len(content))

    def resolve(self, path_or_name: Union[str, Path]) -> Path:
        """
        Map a client-supplied path or file name onto a file inside the root.

        Raises:
            StoredFileNotFoundError: outside the root or missing on disk.
        """
        raw = Path(path_or_name)
        if raw.is_absolute():
            candidate = raw
        elif len(raw.parts) == 1:
            candidate = self.root / raw
        else:
            candidate = Path.cwd() / raw
        candidate = candidate.resolve()
        if candidate.parent != self.root or not candidate.is_file():
            raise StoredFileNotFoundError(f"File not found: {path_or_name}")
        return candidate

    def read(self, path_or_name: Union[str, Path]) -> bytes:
        path = self.resolve(path_or_name)
        with path.open("rb") as f:
            return f.read()

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------
    def save_output(self, content: bytes) -> StoredFile:
        filename = _unique_name(OUTPUT_PREFIX, ".pdf")
        target = self.root / filename
        with target.open("wb") as f:
            f.write(content)
        self._remember(filename, content)

        if self.s3_bucket:
            key = f"{self.s3_prefix}{filename}"
            self.s3.put_object(Bucket=self.s3_bucket, Key=key, Body=content, ContentType="application/pdf")
            logger.info("Mirrored %s to s3://%s/%s", filename, self.s3_bucket, key)

        return StoredFile(filename=filename, original_name=filename, path=str(target), size=len(content))

    def _remember(self, filename: str, content: bytes) -> None:
        with self._cache_lock:
            self._output_cache[filename] = content

    def load_output(self, filename: str) -> Optional[bytes]:
        """Bytes of a produced file by name, or None when it does not exist."""
        if not filename or Path(filename).name != filename:
            return None

        with self._cache_lock:
            cached = self._output_cache.get(filename)
        if cached is not None:
            return cached

        target = self.root / filename
        if target.is_file():
            with target.open("rb") as f:
                content = f.read()
            self._remember(filename, content)
            return content

        if self.s3_bucket:
            key = f"{self.s3_prefix}{filename}"
            try:
                obj = self.s3.get_object(Bucket=self.s3_bucket, Key=key)
            except (BotoCoreError, ClientError) as exc:
                logger.info("Output %s not found in S3: %s", filename, exc)
                return None
            content = obj["Body"].read()
            self._remember(filename, content)
            return content
        return None
