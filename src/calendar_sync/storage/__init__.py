"""Blob storage for card media and attachments."""

from calendar_sync.storage.blobs import BlobStore, Upload, validate_media

__all__ = ["BlobStore", "Upload", "validate_media"]
