"""Blob storage for planner documents and death certificates."""

import logging
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from everease.core.config import settings
from everease.core.exceptions import DependencyError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Storage Backend
# =============================================================================

def _get_s3_client():
    """Get boto3 S3 client."""
    return boto3.client(
        "s3",
        region_name=settings.S3_REGION,
        endpoint_url=settings.S3_ENDPOINT_URL or None,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
    )


def _get_storage_backend() -> str:
    return settings.STORAGE_BACKEND


def _local_path(path: str) -> str:
    """Resolve a storage path under LOCAL_STORAGE_PATH, refusing escapes."""
    root = os.path.abspath(settings.LOCAL_STORAGE_PATH)
    full = os.path.abspath(os.path.join(root, path))
    if os.path.commonpath([root, full]) != root:
        raise ValidationError("Invalid storage path")
    return full


# =============================================================================
# File Operations
# =============================================================================

def upload(path: str, data: bytes, content_type: str | None = None) -> str:
    """
    Store bytes at path, overwriting any existing object.

    Returns:
        The storage path
    """
    backend = _get_storage_backend()

    if backend == "s3":
        extra = {"ContentType": content_type} if content_type else {}
        try:
            _get_s3_client().put_object(
                Bucket=settings.S3_BUCKET, Key=path, Body=data, **extra
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 upload failed for %s", path, exc_info=True)
            raise DependencyError("Blob storage upload failed") from exc
    else:
        full = _local_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as f:
                f.write(data)
        except OSError as exc:
            logger.error("Local upload failed for %s", path, exc_info=True)
            raise DependencyError("Blob storage upload failed") from exc

    return path


def download(path: str) -> bytes:
    """Read an object back. Missing objects raise DependencyError."""
    backend = _get_storage_backend()

    if backend == "s3":
        try:
            response = _get_s3_client().get_object(Bucket=settings.S3_BUCKET, Key=path)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError("Blob storage download failed") from exc

    try:
        with open(_local_path(path), "rb") as f:
            return f.read()
    except OSError as exc:
        raise DependencyError("Blob storage download failed") from exc


def delete(path: str) -> None:
    """Delete an object; deleting a missing object is a no-op."""
    backend = _get_storage_backend()

    if backend == "s3":
        try:
            _get_s3_client().delete_object(Bucket=settings.S3_BUCKET, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError("Blob storage delete failed") from exc
        return

    full = _local_path(path)
    try:
        if os.path.exists(full):
            os.remove(full)
    except OSError as exc:
        raise DependencyError("Blob storage delete failed") from exc


def exists(path: str) -> bool:
    backend = _get_storage_backend()
    if backend == "s3":
        try:
            _get_s3_client().head_object(Bucket=settings.S3_BUCKET, Key=path)
            return True
        except ClientError:
            return False
        except BotoCoreError as exc:
            raise DependencyError("Blob storage lookup failed") from exc
    return os.path.exists(_local_path(path))


def signed_url(path: str) -> str:
    """Generate a short-lived download URL."""
    backend = _get_storage_backend()

    if backend == "s3":
        try:
            return _get_s3_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.S3_BUCKET, "Key": path},
                ExpiresIn=settings.SIGNED_URL_EXPIRY_SECONDS,
            )
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError("Could not sign download URL") from exc

    # Local: served by the API (dev only)
    return f"/documents/local/{path}"
