# estimator/blob_store.py

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

from estimator.exceptions import StorageError

logger = logging.getLogger(__name__)


@dataclass
class BlobUploadResult:
    url: str
    pathname: str
    size: int


def _safe_name(filename: str) -> str:
    name = Path(filename).name
    return re.sub(r"[^A-Za-z0-9._-]+", "_", name) or "upload"


class BlobStore:
    """
    Uploaded documents on local disk, addressed by file:// URLs.

    Callers only keep the URL; read/delete refuse anything outside
    `upload_dir`.
    """

    def __init__(self, upload_dir: Path):
        self.upload_dir = Path(upload_dir)

    def upload(self, filename: str, data: bytes) -> BlobUploadResult:
        pathname = f"{int(time.time() * 1000)}-{_safe_name(filename)}"
        target = self.upload_dir / pathname
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("Error uploading %s to blob storage: %s", filename, e)
            raise StorageError("Failed to upload file to blob storage") from e

        return BlobUploadResult(
            url=target.resolve().as_uri(),
            pathname=pathname,
            size=len(data),
        )

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise StorageError(f"Unsupported blob URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if self.upload_dir.resolve() not in path.parents:
            raise StorageError(f"Blob URL is outside the upload directory: {url}")
        return path

    def read(self, url: str) -> bytes:
        path = self._path_for(url)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError("Failed to read file content from blob storage") from e

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Blob already gone: %s", url)
        except OSError as e:
            raise StorageError("Failed to delete file from blob storage") from e
