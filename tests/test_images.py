"""
Tests for remote image probing, downloading and resizing.
"""

import asyncio
import io

import httpx
import pytest
from PIL import Image

from conftest import image_handler, make_jpeg, make_png
from docsearch.errors import ImageDownloadError, ImageResizeError, InvalidContentTypeError, ValidationError
from docsearch.ingestion.images import download_image, probe_image, resize_image


class TestProbe:
    def test_accepts_png_from_headers(self):
        """A HEAD answer is enough; the body is never requested."""
        methods = []

        def handler(request):
            methods.append(request.method)
            return image_handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        assert asyncio.run(probe_image(client, "https://img.test/a.png")) is None
        assert methods == ["HEAD"]

    def test_declared_size_over_limit(self, http_client):
        with pytest.raises(ValidationError) as exc:
            asyncio.run(probe_image(http_client, "https://img.test/huge.png"))
        assert exc.value.errors[0].field == "url"

    def test_rejects_html(self, http_client):
        with pytest.raises(InvalidContentTypeError) as exc:
            asyncio.run(probe_image(http_client, "https://img.test/page.html"))
        assert exc.value.content_type == "text/html"

    def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        with pytest.raises(ImageDownloadError):
            asyncio.run(probe_image(client, "https://down.test/a.png"))


class TestDownload:
    def test_returns_body(self, http_client):
        data = asyncio.run(download_image(http_client, "https://img.test/b.jpg"))
        assert data[:2] == b"\xff\xd8"

    def test_byte_cap_is_enforced_while_streaming(self, http_client):
        """The cap applies to bytes received, not to the advertised length."""
        with pytest.raises(ValidationError):
            asyncio.run(download_image(http_client, "https://img.test/b.jpg", max_bytes=16))

    def test_non_200(self, http_client):
        with pytest.raises(ImageDownloadError):
            asyncio.run(download_image(http_client, "https://img.test/nope.png"))


class TestResize:
    def test_small_image_is_untouched(self):
        data = make_png(10, 10)
        assert resize_image(data, 2048) is data

    def test_large_image_keeps_aspect_ratio(self):
        data = make_png(400, 100)
        out = resize_image(data, 200)
        with Image.open(io.BytesIO(out)) as img:
            assert img.size == (200, 50)
            assert img.format == "PNG"

    def test_jpeg_stays_jpeg(self):
        out = resize_image(make_jpeg(300, 300), 100)
        with Image.open(io.BytesIO(out)) as img:
            assert img.format == "JPEG"
            assert max(img.size) == 100

    def test_garbage_raises(self):
        with pytest.raises(ImageResizeError):
            resize_image(b"definitely not an image")
