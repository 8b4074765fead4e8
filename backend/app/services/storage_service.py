"""Supabase Storage service for generated images"""
import base64
import binascii
import logging
import uuid
from urllib.parse import quote

import httpx

from app.core.config import settings, SUPABASE_STORAGE_URL
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT = 30.0


def _encode_object_key_for_url(object_key: str) -> str:
    """URL-encode each path segment while keeping the slashes"""
    return '/'.join(quote(segment, safe='') for segment in object_key.split('/'))


def build_image_key(user_id: str) -> str:
    """Object key for a new image: one folder per user"""
    return f"{user_id}/{uuid.uuid4()}.png"


def public_url(object_key: str, bucket: str = None) -> str:
    bucket = bucket or settings.SUPABASE_IMAGE_BUCKET
    return f"{SUPABASE_STORAGE_URL}/object/public/{bucket}/{_encode_object_key_for_url(object_key)}"


def upload_image(user_id: str, b64_data: str) -> str:
    """Upload a base64 PNG and return its public URL

    Raises:
        StorageError: If the payload is not valid base64 or the upload fails
    """
    try:
        image_bytes = base64.b64decode(b64_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise StorageError(f"Invalid image data: {e}")

    object_key = build_image_key(user_id)
    bucket = settings.SUPABASE_IMAGE_BUCKET
    upload_url = f"{SUPABASE_STORAGE_URL}/object/{bucket}/{_encode_object_key_for_url(object_key)}"

    try:
        response = httpx.post(
            upload_url,
            content=image_bytes,
            headers={
                "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
                "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
                "Content-Type": "image/png",
                "x-upsert": "true",
            },
            timeout=UPLOAD_TIMEOUT
        )
    except httpx.TimeoutException:
        raise StorageError(f"Timeout uploading image (exceeded {UPLOAD_TIMEOUT}s)")
    except httpx.RequestError as e:
        raise StorageError(f"Error uploading image: {e}")

    if response.status_code >= 400:
        logger.error(f"Image upload failed for user {user_id}: HTTP {response.status_code} {response.text}")
        raise StorageError(f"Image upload failed with HTTP {response.status_code}")

    url = public_url(object_key, bucket)
    logger.info(f"Uploaded image for user {user_id} to {object_key}")
    return url
