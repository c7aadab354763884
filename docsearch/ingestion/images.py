"""Fetching and preparing remote images for the embedding model."""

from __future__ import annotations

import io
import logging
from typing import Optional, Sequence

import httpx
from PIL import Image, UnidentifiedImageError

from ..errors import ImageDownloadError, ImageResizeError, InvalidContentTypeError, ValidationError
from ..validation import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES, check_image

logger = logging.getLogger(__name__)

MAX_DIMENSION = 2048


def _mime(content_type: Optional[str]) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def _length(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


async def probe_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> None:
    """Check a URL's declared content type and size without downloading the body.

    Uses HEAD, falling back to a streamed GET whose body is never read when the
    server refuses HEAD.
    """
    try:
        response = await client.head(url, follow_redirects=True)
        if response.status_code in (403, 405, 501):
            async with client.stream("GET", url, follow_redirects=True) as streamed:
                response = streamed
    except httpx.HTTPError as e:
        raise ImageDownloadError(f"Failed to reach url {url}") from e

    if response.status_code >= 400:
        raise ImageDownloadError(
            f"Non 200 response for url {url}, status: {response.status_code}"
        )

    content_type = response.headers.get("content-type")
    if _mime(content_type) not in allowed_types:
        raise InvalidContentTypeError(content_type, url)

    length = _length(response.headers.get("content-length"))
    errors = check_image(
        content_type, length, field="url", allowed_types=allowed_types, max_bytes=max_bytes
    )
    if errors:
        raise ValidationError(errors)


async def download_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> bytes:
    """Download an image, enforcing the content-type allow-list and a byte cap."""
    try:
        async with client.stream("GET", url, follow_redirects=True) as response:
            if response.status_code >= 400:
                raise ImageDownloadError(
                    f"Non 200 response for url {url}, status: {response.status_code}"
                )
            content_type = response.headers.get("content-type")
            if _mime(content_type) not in allowed_types:
                raise InvalidContentTypeError(content_type, url)

            buf = bytearray()
            async for chunk in response.aiter_bytes():
                buf.extend(chunk)
                if len(buf) > max_bytes:
                    raise ValidationError.single(
                        "url",
                        f"File size exceeds the limit of {max_bytes // (1024 * 1024)} MB.",
                    )
    except httpx.HTTPError as e:
        raise ImageDownloadError(f"Failed downloading image {url}") from e

    logger.debug("Downloaded %d bytes from %s", len(buf), url)
    return bytes(buf)


def resize_image(data: bytes, max_dimension: int = MAX_DIMENSION) -> bytes:
    """Shrink so neither side exceeds ``max_dimension``, keeping aspect ratio.

    Images already within bounds are returned unchanged.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.width <= max_dimension and img.height <= max_dimension:
                return data
            fmt = img.format or "PNG"
            resized = img.copy()
            resized.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            if fmt == "JPEG" and resized.mode not in ("RGB", "L"):
                resized = resized.convert("RGB")
            out = io.BytesIO()
            resized.save(out, format=fmt)
            return out.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageResizeError("Failed to resize image") from e
