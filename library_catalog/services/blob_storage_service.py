"""
Blob storage for library item files.

Files are stored under ``<upload prefix>/<uuid><ext>``; thumbnails are only
referenced (``<thumbnail prefix>/<uuid>_thumb<ext>``), never generated here.
"""
import logging
import mimetypes
import os
import uuid
from typing import Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from library_catalog.core.config import settings
from library_catalog.core.exceptions import NotFoundError, StorageUnavailableError, ValidationError
from library_catalog.core.object_storage import BUCKET_NAME, get_s3_client
from library_catalog.schemas.library import UploadedFile

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ('404', 'NoSuchKey', 'NotFound')


def validate_upload(file: UploadedFile) -> None:
    """Reject empty, oversized, or path-traversing uploads."""
    if not file.content:
        raise ValidationError("Failed to store empty file", filename=file.filename)
    if '..' in file.filename:
        raise ValidationError(f"Invalid file path: {file.filename}", filename=file.filename)
    if file.size > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File size exceeds maximum allowed ({settings.MAX_UPLOAD_SIZE // (1024 * 1024)} MB)",
            filename=file.filename
        )


def generate_key(suggested_name: Optional[str] = None, prefix: Optional[str] = None) -> str:
    ext = os.path.splitext(suggested_name or '')[1].lower()
    return f"{prefix or settings.LIBRARY_UPLOAD_PREFIX}/{uuid.uuid4()}{ext}"


def thumbnail_key_for(file_key: str) -> str:
    """Derive the thumbnail reference that accompanies a stored file."""
    name, ext = os.path.splitext(os.path.basename(file_key))
    return f"{settings.LIBRARY_THUMBNAIL_PREFIX}/{name}_thumb{ext}"


class BlobStore:
    """Key-value blob storage used by the library item service."""

    def store(self, content: bytes, suggested_name: Optional[str] = None, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    def load(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def store_upload(self, file: UploadedFile) -> str:
        validate_upload(file)
        content_type = file.content_type or mimetypes.guess_type(file.filename)[0] or 'application/octet-stream'
        return self.store(file.content, suggested_name=file.filename, content_type=content_type)


class S3BlobStore(BlobStore):
    """Blob store backed by an S3-compatible bucket (MinIO in development)."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self.client = client or get_s3_client()
        self.bucket = bucket or BUCKET_NAME

    def store(self, content: bytes, suggested_name: Optional[str] = None, content_type: Optional[str] = None) -> str:
        key = generate_key(suggested_name)
        try:
            self.client.put_object(
                Body=content,
                Bucket=self.bucket,
                Key=key,
                ContentType=content_type or 'application/octet-stream'
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload blob {key}: {e}")
            raise StorageUnavailableError("Blob store", str(e)) from e
        logger.info(f"Stored blob {key} ({len(content)} bytes)")
        return key

    def load(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in NOT_FOUND_CODES:
                raise NotFoundError("Blob", key) from e
            raise StorageUnavailableError("Blob store", str(e)) from e
        except BotoCoreError as e:
            raise StorageUnavailableError("Blob store", str(e)) from e
        return response['Body'].read()

    def delete(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageUnavailableError("Blob store", str(e)) from e
        return True

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in NOT_FOUND_CODES:
                return False
            raise StorageUnavailableError("Blob store", str(e)) from e
        except BotoCoreError as e:
            raise StorageUnavailableError("Blob store", str(e)) from e
        return True


class InMemoryBlobStore(BlobStore):
    """Process-local blob store for tests and local runs."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def store(self, content: bytes, suggested_name: Optional[str] = None, content_type: Optional[str] = None) -> str:
        key = generate_key(suggested_name)
        self.blobs[key] = bytes(content)
        return key

    def load(self, key: str) -> bytes:
        if key not in self.blobs:
            raise NotFoundError("Blob", key)
        return self.blobs[key]

    def delete(self, key: str) -> bool:
        return self.blobs.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return key in self.blobs


_default_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _default_blob_store
    if _default_blob_store is None:
        _default_blob_store = S3BlobStore()
    return _default_blob_store


def release_blob(blob_store: BlobStore, key: Optional[str]) -> bool:
    """
    Best-effort deletion used during item cleanup.
    Failures are logged and swallowed so the record deletion can proceed.
    """
    if not key:
        return False
    try:
        return blob_store.delete(key)
    except Exception as e:
        logger.error(f"Failed to delete blob {key}: {e}")
        return False
