"""Azure Blob Storage uploads for card assets."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from calendar_sync.errors import UploadError

if TYPE_CHECKING:
    from calendar_sync.config import StorageConfig

logger = logging.getLogger(__name__)

_CACHE_CONTROL = "public, max-age=31536000"
_MEDIA_PREFIXES = ("image/", "video/")
_MEGABYTE = 1024 * 1024


@dataclass(frozen=True)
class Upload:
    """A file handed over by the UI for upload."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _format_limit(max_bytes: int) -> str:
    if max_bytes < _MEGABYTE:
        return f"{max_bytes} bytes"
    return f"{max_bytes / _MEGABYTE:.1f}".removesuffix(".0") + "MB"


def validate_media(upload: Upload, max_bytes: int) -> None:
    """Reject anything that is not an image or video, or is too large."""
    if not upload.content_type.startswith(_MEDIA_PREFIXES):
        raise UploadError("Only images and videos are allowed.")
    if upload.size > max_bytes:
        raise UploadError(f"File size exceeds {_format_limit(max_bytes)} limit.")


class BlobStore:
    """Uploads files and returns their durable public URL."""

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._client: BlobServiceClient | None = None

    async def initialize(self) -> None:
        if self._config.connection_string:
            self._client = BlobServiceClient.from_connection_string(self._config.connection_string)
        elif self._config.account_url:
            self._client = BlobServiceClient(account_url=self._config.account_url)
        else:
            logger.warning("Blob storage is not configured; uploads will fail")

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def upload(self, upload: Upload) -> str:
        """Upload a file under ``uploads/<unix-ms>_<name>`` and return its URL."""
        if self._client is None:
            raise UploadError("Blob storage is not configured")
        blob_name = f"uploads/{int(time.time() * 1000)}_{upload.filename}"
        blob = self._client.get_blob_client(container=self._config.container, blob=blob_name)
        try:
            await blob.upload_blob(
                upload.data,
                overwrite=True,
                content_settings=ContentSettings(
                    content_type=upload.content_type,
                    cache_control=_CACHE_CONTROL,
                ),
            )
        except Exception as exc:
            logger.exception("Upload failed for %s", upload.filename)
            raise UploadError(f"Failed to upload {upload.filename}") from exc
        logger.info("Uploaded %s (%d bytes)", blob_name, upload.size)
        return blob.url
