"""Turn an uploaded file or a remote URL into validated image bytes.

Nothing here writes to storage. Both paths end in ``IngestedImage`` with the
size limit already enforced, so the write path only deals with slots.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from core.config import settings
from core.errors import ImageValidationError, PayloadTooLargeError, UpstreamFetchError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class IngestedImage:
    data: bytes
    mime_type: str

    @property
    def byte_length(self) -> int:
        return len(self.data)


def normalize_mime_type(content_type: str | None) -> str:
    # "image/JPEG; charset=binary" -> "image/jpeg"
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_image_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def enforce_size_limit(size: int, max_bytes: int | None = None) -> None:
    limit = settings.MAX_IMAGE_BYTES if max_bytes is None else max_bytes
    if size > limit:
        raise PayloadTooLargeError(f"Image is too large (limit {limit} bytes)")


def ingest_upload(
    data: bytes | None, content_type: str | None, max_bytes: int | None = None
) -> IngestedImage:
    """Validate an uploaded file body and its claimed content type."""
    if data is None:
        raise ImageValidationError("Missing image file", field="file")
    if not data:
        raise ImageValidationError("Image file is empty", field="file")

    mime_type = normalize_mime_type(content_type)
    if not is_image_mime_type(mime_type):
        raise ImageValidationError("Only image files are allowed", field="file")

    enforce_size_limit(len(data), max_bytes)
    return IngestedImage(data=data, mime_type=mime_type)


def validate_source_url(source_url: str) -> httpx.URL:
    try:
        url = httpx.URL(source_url.strip())
    except (httpx.InvalidURL, TypeError, ValueError):
        raise ImageValidationError("Invalid URL", field="sourceUrl") from None

    if url.scheme not in _ALLOWED_SCHEMES:
        raise ImageValidationError("Only http/https URLs are allowed", field="sourceUrl")
    if not url.host:
        raise ImageValidationError("Invalid URL", field="sourceUrl")
    return url


async def fetch_remote_image(
    source_url: str,
    client: httpx.AsyncClient,
    max_bytes: int | None = None,
    timeout: float | None = None,
) -> IngestedImage:
    """Download ``source_url`` and return it as an image.

    The body is streamed so an oversized image is abandoned as soon as it
    crosses the limit. ``timeout`` bounds the whole download, not just each
    read, so a server trickling bytes cannot hold the request open.
    """
    url = validate_source_url(source_url)
    limit = settings.MAX_IMAGE_BYTES if max_bytes is None else max_bytes
    deadline = settings.REMOTE_FETCH_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        async with asyncio.timeout(deadline):
            async with client.stream("GET", url, follow_redirects=True) as response:
                if not response.is_success:
                    raise UpstreamFetchError(
                        f"Failed to download image from URL (HTTP {response.status_code})"
                    )

                mime_type = normalize_mime_type(response.headers.get("content-type"))
                if not is_image_mime_type(mime_type):
                    raise UpstreamFetchError("URL did not return an image")

                declared = response.headers.get("content-length")
                if declared is not None and declared.isdigit():
                    enforce_size_limit(int(declared), limit)

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    enforce_size_limit(received, limit)
                    chunks.append(chunk)
    except (TimeoutError, httpx.TimeoutException) as exc:
        logger.warning("Timed out fetching image from %s", url)
        raise UpstreamFetchError("Timed out downloading image from URL") from exc
    except httpx.HTTPError as exc:
        logger.warning("Failed to fetch image from %s: %s", url, exc)
        raise UpstreamFetchError() from exc

    if received == 0:
        raise UpstreamFetchError("URL returned an empty image")
    return IngestedImage(data=b"".join(chunks), mime_type=mime_type)
