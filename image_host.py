"""
Image host client.

Profile pictures are stored by an external image host. The host accepts a
multipart POST with a ``file`` field and answers with JSON carrying the
public URL (``url``, ``secure_url`` or ``data.url``).
"""

import logging
from typing import Optional

import httpx

from config import IMAGE_HOST_API_KEY, IMAGE_HOST_TIMEOUT, IMAGE_HOST_URL

logger = logging.getLogger(__name__)


class ImageUploadError(Exception):
    pass


def _extract_url(payload) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    url = payload.get("url") or payload.get("secure_url")
    if not url and isinstance(payload.get("data"), dict):
        url = payload["data"].get("url")
    return url


class ImageHost:
    def __init__(self, endpoint: Optional[str] = None, api_key: Optional[str] = None, timeout: float = IMAGE_HOST_TIMEOUT, transport=None):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def upload(self, data: bytes, filename: str = "upload", content_type: str = "application/octet-stream") -> str:
        """Send the bytes to the host and return the stored image's URL"""
        if not self.endpoint:
            raise ImageUploadError("Image host not configured. Check IMAGE_HOST_URL environment variable.")
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                res = client.post(self.endpoint, files={"file": (filename, data, content_type)}, headers=headers)
                res.raise_for_status()
                url = _extract_url(res.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Image upload to %s failed: %s", self.endpoint, e)
            raise ImageUploadError(f"Image upload failed: {e}")
        if not url:
            raise ImageUploadError("Image host response did not include a URL")
        return url


def get_image_host() -> ImageHost:
    return ImageHost(IMAGE_HOST_URL, IMAGE_HOST_API_KEY)
