"""Avatar upload reading and normalisation."""

from __future__ import annotations

from io import BytesIO

from fastapi import UploadFile
from PIL import Image, ImageOps, UnidentifiedImageError

JPEG_CONTENT_TYPE = "image/jpeg"
ALLOWED_IMAGE_CONTENT_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp"}
)
ALLOWED_IMAGE_FORMATS = frozenset({"JPEG", "PNG", "WEBP"})
MAX_IMAGE_DIMENSION = 512
READ_CHUNK_SIZE = 64 * 1024


class UploadTooLargeError(ValueError):
    """Raised when an upload exceeds the configured byte budget."""


async def read_upload_file(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an upload fully, refusing to buffer more than ``max_bytes``."""
    if upload.content_type and upload.content_type.lower() not in ALLOWED_IMAGE_CONTENT_TYPES:
        raise ValueError("Invalid file type. Only JPEG, JPG, PNG and WEBP images are allowed.")

    buffer = bytearray()
    while True:
        chunk = await upload.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise UploadTooLargeError(f"File exceeds maximum size of {max_bytes} bytes")
    if not buffer:
        raise ValueError("Uploaded file is empty")
    return bytes(buffer)


def process_image_bytes(data: bytes) -> tuple[bytes, str]:
    """Validate an image and re-encode it as a bounded RGB JPEG."""
    try:
        with Image.open(BytesIO(data)) as image:
            if image.format not in ALLOWED_IMAGE_FORMATS:
                raise ValueError("Unsupported image format")
            image = ImageOps.exif_transpose(image)
            image = image.convert("RGB")
            image.thumbnail((MAX_IMAGE_DIMENSION, MAX_IMAGE_DIMENSION))
            output = BytesIO()
            image.save(output, format="JPEG", quality=85, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("Uploaded file is not a valid image") from exc
    return output.getvalue(), JPEG_CONTENT_TYPE
