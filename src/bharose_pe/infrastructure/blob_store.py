"""Local filesystem blob store for dispute evidence and delivery proofs.

Objects live under ``<blob_storage_root>/<bucket>/<path>`` and are exposed
at ``<blob_public_base_url>/<bucket>/<path>``. Paths are validated so an
upload can never escape its bucket directory.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path, PurePosixPath

from bharose_pe.config import get_settings
from bharose_pe.domain.exceptions import BlobStoreError
from bharose_pe.logging_config import get_logger

logger = get_logger(__name__)

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")


class LocalBlobStore:
    """Stores uploaded files on disk and returns their public URL."""

    def __init__(
        self,
        root: str | Path | None = None,
        public_base_url: str | None = None,
        max_bytes: int | None = None,
    ) -> None:
        settings = get_settings()
        self._root = Path(root or settings.blob_storage_root)
        self._base_url = (public_base_url or settings.blob_public_base_url).rstrip("/")
        self._max_bytes = max_bytes if max_bytes is not None else settings.blob_max_upload_bytes

    def _resolve(self, bucket: str, path: str) -> Path:
        parts = PurePosixPath(path).parts
        if not _SAFE_SEGMENT.match(bucket) or not parts:
            raise BlobStoreError("Invalid bucket or path", path)
        for segment in parts:
            if segment in (".", "..") or not _SAFE_SEGMENT.match(segment):
                raise BlobStoreError("Invalid path segment", path)
        return self._root.joinpath(bucket, *parts)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/{bucket}/{path}"

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        """Write `data` and return the object's public URL."""
        if not data:
            raise BlobStoreError("Empty upload", path)
        if len(data) > self._max_bytes:
            raise BlobStoreError(
                f"Upload of {len(data)} bytes exceeds limit of {self._max_bytes}", path
            )
        target = self._resolve(bucket, path)
        try:
            await asyncio.to_thread(_write_file, target, data)
        except OSError as exc:
            logger.error("blob_store.write_failed", bucket=bucket, path=path, error=str(exc))
            raise BlobStoreError(f"Could not store file: {exc}", path) from exc
        logger.info("blob_store.uploaded", bucket=bucket, path=path, size=len(data))
        return self.public_url(bucket, path)


def _write_file(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
