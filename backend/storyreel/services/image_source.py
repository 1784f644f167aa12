"""Resolve shot image references to raw bytes.

Shots carry their still image as one of:
- an inline ``data:<mime>;base64,<payload>`` URI,
- an ``http(s)://`` URL (fetched with httpx),
- a path to an existing local file.

Anything else raises UnsupportedReference; a reference of a supported form
that cannot be read raises ResourceUnavailable.
"""

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from storyreel.errors import ResourceUnavailable, UnsupportedReference

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)

_MIME_BY_SUFFIX = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


@dataclass(frozen=True)
class ImageData:
    """Decoded image payload."""

    data: bytes
    mime_type: str = "image/png"


class ImageResolver:
    """Turn image references into ImageData.

    The HTTP client is created lazily and reused across fetches; pass one in
    to share a connection pool or to stub the network in tests.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0):
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(self._timeout, connect=30.0),
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def resolve(self, ref: Optional[str]) -> ImageData:
        """Resolve a single reference.

        Raises:
            ResourceUnavailable: The reference is empty or cannot be read.
            UnsupportedReference: The reference is not a supported form.
        """
        if not ref:
            raise ResourceUnavailable("Image reference is empty")

        match = _DATA_URI.match(ref)
        if match:
            return self._decode_data_uri(match.group(1), match.group(2))

        if ref.startswith(("http://", "https://")):
            return await self._fetch(ref)

        path = Path(ref)
        try:
            is_file = path.is_file()
        except OSError:
            # e.g. ENAMETOOLONG for a bare base64 payload
            is_file = False
        if is_file:
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise ResourceUnavailable(f"Failed to read image file {ref}: {e}") from e
            mime_type = _MIME_BY_SUFFIX.get(path.suffix.lower(), "image/png")
            return ImageData(data=data, mime_type=mime_type)

        raise UnsupportedReference(f"Unsupported image URL/path format: {_short(ref)}")

    @staticmethod
    def _decode_data_uri(mime_type: str, payload: str) -> ImageData:
        try:
            data = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ResourceUnavailable(f"Invalid base64 image payload: {e}") from e
        if not data:
            raise ResourceUnavailable("Inline image payload is empty")
        return ImageData(data=data, mime_type=mime_type or "image/png")

    async def _fetch(self, url: str) -> ImageData:
        logger.debug(f"GET {url}")
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ResourceUnavailable(
                f"Failed to fetch image from URL: {url}, Status: {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ResourceUnavailable(f"Failed to fetch image from URL: {url}: {e}") from e

        content_type = response.headers.get("content-type", "image/png")
        mime_type = content_type.split(";")[0].strip() or "image/png"
        return ImageData(data=response.content, mime_type=mime_type)


def _short(ref: str, limit: int = 80) -> str:
    """Truncate long references (inline payloads) for error messages."""
    return ref if len(ref) <= limit else ref[:limit - 3] + "..."
