"""
File storage abstraction layer supporting both local filesystem and AWS S3.

Resumes are stored per candidate under candidates/{candidate_id}/. Every
backend returns a durable URL plus the storage path the worker later uses to
download the bytes again.

Failures are reported as TransientServiceError (retried by the pipeline)
unless the condition is permanent, e.g. a missing object, in which case
StorageError is raised.
"""

import logging
import os
import time
import uuid
from functools import lru_cache
from pathlib import Path
from typing import NamedTuple
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from resume_pipeline.core.config import settings
from resume_pipeline.core.exceptions import StorageError, TransientServiceError

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    'application/pdf': '.pdf',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': '.docx',
    'application/msword': '.doc',
    'image/jpeg': '.jpg',
    'image/png': '.png',
    'image/gif': '.gif',
}

# S3 error codes that will not go away by trying again
PERMANENT_S3_ERROR_CODES = {
    'NoSuchKey', 'NoSuchBucket', '404', 'AccessDenied', 'InvalidObjectState', 'InvalidBucketName'
}


class StoredFile(NamedTuple):
    """Result of an upload: durable reference plus backend path"""
    url: str
    path: str


def build_object_path(candidate_id: str, content_type: str) -> str:
    """candidates/{candidate_id}/resume_{epoch_ms}_{short_uuid}{ext}"""
    extension = CONTENT_TYPE_EXTENSIONS.get(content_type, '')
    timestamp = int(time.time() * 1000)
    return f"candidates/{candidate_id}/resume_{timestamp}_{uuid.uuid4().hex[:8]}{extension}"


class StorageBackend:
    """Abstract base class for storage backends"""

    def upload(self, data: bytes, content_type: str, candidate_id: str) -> StoredFile:
        """Store resume bytes for a candidate and return its URL and path"""
        raise NotImplementedError

    def download(self, path: str) -> bytes:
        """Return the bytes stored at path"""
        raise NotImplementedError

    def delete(self, path: str) -> None:
        """Remove the object stored at path"""
        raise NotImplementedError


class LocalStorage(StorageBackend):
    """Local filesystem storage backend"""

    def __init__(self, base_dir: str = "uploads"):
        self.base_dir = Path(base_dir).resolve()
        os.makedirs(self.base_dir, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full_path = (self.base_dir / path).resolve()
        # Reject ../ tricks that would escape the storage root
        if self.base_dir not in full_path.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return full_path

    def upload(self, data: bytes, content_type: str, candidate_id: str) -> StoredFile:
        path = build_object_path(candidate_id, content_type)
        full_path = self._resolve(path)

        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            raise TransientServiceError(f"Temporary storage failure while uploading {path}: {e}")

        logger.info(f"Stored {len(data)} bytes at {full_path}")
        return StoredFile(url=full_path.as_uri(), path=path)

    def download(self, path: str) -> bytes:
        full_path = self._resolve(path)
        try:
            return full_path.read_bytes()
        except FileNotFoundError:
            raise StorageError(f"Resume file not found in storage: {path}")
        except OSError as e:
            raise TransientServiceError(f"Temporary storage failure while downloading {path}: {e}")

    def delete(self, path: str) -> None:
        full_path = self._resolve(path)
        try:
            full_path.unlink()
        except FileNotFoundError:
            raise StorageError(f"Resume file not found in storage: {path}")
        except OSError as e:
            raise TransientServiceError(f"Temporary storage failure while deleting {path}: {e}")


class S3Storage(StorageBackend):
    """AWS S3 storage backend"""

    def __init__(self, bucket_name: str = None, s3_client=None):
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME

        if s3_client is not None:
            self.s3_client = s3_client
        elif settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.AWS_REGION
            )
        else:
            # Use IAM roles or instance profile
            self.s3_client = boto3.client('s3', region_name=settings.AWS_REGION)

    def upload(self, data: bytes, content_type: str, candidate_id: str) -> StoredFile:
        key = build_object_path(candidate_id, content_type)

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption='AES256'  # Encryption at rest
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error("upload", key, e)

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket_name}/{key}")
        return StoredFile(url=f"s3://{self.bucket_name}/{key}", path=key)

    def download(self, path: str) -> bytes:
        key = self._parse_s3_uri(path)

        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error("download", key, e)

    def delete(self, path: str) -> None:
        key = self._parse_s3_uri(path)

        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error("delete", key, e)

    def _translate_error(self, operation: str, key: str, error: Exception) -> Exception:
        if isinstance(error, ClientError):
            code = error.response.get('Error', {}).get('Code', '')
            if code in PERMANENT_S3_ERROR_CODES:
                logger.error(f"S3 {operation} of {key} failed permanently: {code}")
                return StorageError(f"Storage {operation} failed for {key}: {code}")
            logger.warning(f"S3 {operation} of {key} failed: {code}")
            return TransientServiceError(f"Storage service unavailable during {operation} of {key}: {error}")

        logger.warning(f"S3 {operation} of {key} failed: {error}")
        return TransientServiceError(f"Storage network error during {operation} of {key}: {error}")

    def _parse_s3_uri(self, s3_uri: str) -> str:
        """Parse S3 URI and extract key

        Supports formats:
        - s3://bucket-name/key/path
        - candidates/<id>/resume.pdf (assumes default bucket)
        """
        if s3_uri.startswith("s3://"):
            parts = s3_uri.replace("s3://", "").split("/", 1)
            if len(parts) == 2:
                return parts[1]
            raise StorageError(f"Invalid S3 URI format: {s3_uri}")
        return s3_uri


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    """Get storage backend based on USE_S3 setting"""
    if settings.USE_S3:
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME must be set when USE_S3=True")
        return S3Storage()
    return LocalStorage(settings.LOCAL_STORAGE_DIR)
