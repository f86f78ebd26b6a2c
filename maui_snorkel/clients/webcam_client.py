"""Webcam still-frame fetcher.

The beach cams are relayed through Ozolio, whose snapshot endpoint returns a
single JPEG. Relay hiccups come back as an empty body or a small HTML error
page with a 200 status, so the body is checked before it is classified.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import requests


logger = logging.getLogger(__name__)

USER_AGENT = "MauiSnorkelReport/1.0 (wind-check)"
MAX_FRAME_BYTES = 10 * 1024 * 1024

IMAGE_SIGNATURES = {
    b"\xff\xd8\xff": "image/jpeg",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"GIF8": "image/gif",
}


class WebcamError(Exception):
    """Exception raised when a camera frame cannot be fetched."""

    pass


@dataclass
class WebcamFrame:
    """One still frame from a camera."""
    camera_id: str
    data: bytes
    media_type: str

    @property
    def size_kb(self) -> int:
        return round(len(self.data) / 1024)


def sniff_media_type(data: bytes) -> Optional[str]:
    """Identify an image by its leading bytes."""
    for signature, media_type in IMAGE_SIGNATURES.items():
        if data.startswith(signature):
            return media_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


class WebcamClient:
    """Fetches still frames from public webcam snapshot URLs."""

    def __init__(self, timeout: float = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def fetch_frame(self, camera_id: str, snapshot_url: str) -> WebcamFrame:
        """Fetch the current frame for a camera.

        Raises:
            WebcamError: On network failure, timeout, or a body that is not an image.
        """
        try:
            response = self.session.get(snapshot_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise WebcamError(f"Failed to fetch frame for {camera_id}: {e}") from e

        data = response.content
        if not data:
            raise WebcamError(f"Empty frame from {camera_id}")
        if len(data) > MAX_FRAME_BYTES:
            raise WebcamError(f"Frame from {camera_id} is too large ({len(data)} bytes)")

        media_type = sniff_media_type(data)
        if media_type is None:
            raise WebcamError(f"Frame from {camera_id} is not an image")

        frame = WebcamFrame(camera_id=camera_id, data=data, media_type=media_type)
        logger.debug(f"Fetched {camera_id} frame ({frame.size_kb}KB, {media_type})")
        return frame
