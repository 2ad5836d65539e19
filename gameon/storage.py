from __future__ import annotations

import logging
import os
from io import BytesIO
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from .database import UPLOAD_DIR

try:  # Optional – used for HEIC conversion
    from pillow_heif import read_heif
    from PIL import Image
except ImportError:  # pragma: no cover - graceful fallback when libs missing
    read_heif = None
    Image = None

logger = logging.getLogger(__name__)

GCS_IMAGE_BUCKET = os.getenv("GCS_IMAGE_BUCKET")
GCS_IMAGE_BASE_URL = os.getenv("GCS_IMAGE_BASE_URL")
GCS_IMAGE_CACHE_CONTROL = os.getenv("GCS_IMAGE_CACHE_CONTROL", "public, max-age=86400")

ALLOWED_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".heic", ".heif"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class ImageRejected(ValueError):
    """Raised when an upload is not an image we can store."""


def gcs_images_enabled() -> bool:
    """Return True when a Google Cloud Storage bucket is configured for images."""
    return bool(GCS_IMAGE_BUCKET)


def gcs_public_url(object_name: str) -> str:
    if not GCS_IMAGE_BUCKET:
        raise RuntimeError("GCS_IMAGE_BUCKET is not configured.")
    base_url = (GCS_IMAGE_BASE_URL or f"https://storage.googleapis.com/{GCS_IMAGE_BUCKET}").rstrip("/")
    return f"{base_url}/{object_name.lstrip('/')}"


def upload_image_stream(handle: BinaryIO, *, object_name: str, content_type: str) -> str:
    """Upload the provided file-like object to the configured GCS bucket."""
    if not gcs_images_enabled():
        raise RuntimeError("GCS image storage is not enabled.")

    try:
        from google.cloud import storage
    except ImportError as exc:  # pragma: no cover - dependency absent in some envs
        raise RuntimeError(
            "google-cloud-storage is required to upload images to GCS."
        ) from exc

    client = storage.Client()
    bucket = client.bucket(GCS_IMAGE_BUCKET)
    blob = bucket.blob(object_name.lstrip("/"))
    blob.upload_from_file(handle, content_type=content_type)
    if GCS_IMAGE_CACHE_CONTROL:
        blob.cache_control = GCS_IMAGE_CACHE_CONTROL
        blob.patch()
    return gcs_public_url(object_name)


def _convert_heic(data: bytes) -> bytes:
    if not read_heif or not Image:
        raise ImageRejected("HEIC support is not available on the server.")
    try:
        heif_file = read_heif(data)
        img = Image.frombytes(heif_file.mode, heif_file.size, heif_file.data, "raw")
        buffer = BytesIO()
        img.save(buffer, format="JPEG")
    except Exception as exc:
        logger.warning("HEIC conversion failed: %s", exc)
        raise ImageRejected("Could not convert HEIC image.") from exc
    return buffer.getvalue()


def store_image(data: bytes, *, filename: str | None, content_type: str | None, folder: str) -> str:
    """Validate an uploaded image, store it and return its public URL."""
    original_name = filename or "upload.png"
    content_type = (content_type or "").lower()
    suffix = Path(original_name).suffix.lower() or ".png"

    if not content_type.startswith("image/"):
        raise ImageRejected("Only image uploads are allowed.")
    if suffix not in ALLOWED_SUFFIXES:
        raise ImageRejected("Use PNG, JPG, GIF, HEIC, or WebP images.")
    if not data:
        raise ImageRejected("No file uploaded")
    if len(data) > MAX_IMAGE_BYTES:
        raise ImageRejected("File size must be less than 5MB")

    if suffix in {".heic", ".heif"}:
        data = _convert_heic(data)
        suffix = ".jpg"
        content_type = "image/jpeg"
    elif suffix in {".jpg", ".jpeg"}:
        content_type = "image/jpeg"

    object_basename = f"{uuid4().hex}{suffix}"
    if gcs_images_enabled():
        object_name = f"{folder}/{object_basename}"
        return upload_image_stream(BytesIO(data), object_name=object_name, content_type=content_type)

    destination_dir = UPLOAD_DIR / folder
    destination_dir.mkdir(parents=True, exist_ok=True)
    with (destination_dir / object_basename).open("wb") as buffer:
        buffer.write(data)
    return f"/static/uploads/{folder}/{object_basename}"
