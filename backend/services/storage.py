"""MinIO client utilities."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from io import BytesIO
from uuid import uuid4

from minio import Minio
from minio.error import S3Error

from core import settings

AVATAR_KEY_PREFIX = "avatars"


@lru_cache
def get_minio_client() -> Minio:
    """Return a cached MinIO client configured from settings."""
    return Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
    )


def ensure_bucket(client: Minio | None = None) -> None:
    """Ensure the configured bucket exists."""
    client = client or get_minio_client()
    bucket_name = settings.minio_bucket

    if client.bucket_exists(bucket_name):  # pragma: no cover - network call
        return

    try:
        client.make_bucket(bucket_name)  # pragma: no cover - network call
    except S3Error as exc:  # pragma: no cover - handle race conditions
        allowed_codes = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
        if exc.code not in allowed_codes:
            raise


def build_avatar_key(user_id: int) -> str:
    """Return a fresh object key for a user's normalised JPEG avatar."""
    return f"{AVATAR_KEY_PREFIX}/{user_id}-{uuid4().hex}.jpg"


def put_object_bytes(
    object_key: str,
    data: bytes,
    content_type: str,
    client: Minio | None = None,
) -> None:
    """Upload ``data`` under ``object_key`` in the configured bucket."""
    client = client or get_minio_client()
    ensure_bucket(client)
    client.put_object(
        settings.minio_bucket,
        object_key,
        data=BytesIO(data),
        length=len(data),
        content_type=content_type,
    )


def delete_object(object_key: str, client: Minio | None = None) -> None:
    """Delete an object from the configured bucket when it exists."""
    client = client or get_minio_client()
    try:
        client.remove_object(settings.minio_bucket, object_key)  # pragma: no cover - network call
    except S3Error as exc:  # pragma: no cover - network call
        allowed_codes = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}
        if exc.code not in allowed_codes:
            raise


def create_presigned_get_url(
    object_key: str,
    *,
    expires_seconds: int = 120,
    client: Minio | None = None,
) -> str:
    """Return a short-lived pre-signed URL for an object."""
    normalized_object_key = object_key.strip()
    if not normalized_object_key:
        raise ValueError("object_key must not be empty")
    if expires_seconds <= 0:
        raise ValueError("expires_seconds must be positive")

    client = client or get_minio_client()
    return client.presigned_get_object(
        settings.minio_bucket,
        normalized_object_key,
        expires=timedelta(seconds=expires_seconds),
    )
