"""Business logic services."""

from .images import (
    JPEG_CONTENT_TYPE,
    MAX_IMAGE_DIMENSION,
    UploadTooLargeError,
    process_image_bytes,
    read_upload_file,
)
from .rate_limiter import (
    AUTH_SCOPE,
    CREATE_POST_SCOPE,
    GENERAL_SCOPE,
    RateLimitMiddleware,
    RateLimiter,
    get_rate_limiter,
    rate_limit,
    set_rate_limiter,
)
from .storage import (
    build_avatar_key,
    create_presigned_get_url,
    delete_object,
    ensure_bucket,
    get_minio_client,
    put_object_bytes,
)

__all__ = [
    "build_avatar_key",
    "get_minio_client",
    "ensure_bucket",
    "put_object_bytes",
    "delete_object",
    "create_presigned_get_url",
    "process_image_bytes",
    "read_upload_file",
    "MAX_IMAGE_DIMENSION",
    "JPEG_CONTENT_TYPE",
    "UploadTooLargeError",
    "AUTH_SCOPE",
    "CREATE_POST_SCOPE",
    "GENERAL_SCOPE",
    "RateLimiter",
    "RateLimitMiddleware",
    "get_rate_limiter",
    "rate_limit",
    "set_rate_limiter",
]
