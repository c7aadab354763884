from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import httpx

from ..validation import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES, DocumentDescriptor
from ..vectorstore.data_store import DocumentStore
from ..vectorstore.embeddings import EmbeddingBackend
from ..vectorstore.schemas import Document
from .images import MAX_DIMENSION, download_image, resize_image

logger = logging.getLogger(__name__)


class EmbeddingGateway:
    """Turns one accepted descriptor into a stored Document.

    Steps: download and downsize the referenced image (if any), embed image
    and/or text, make sure the collection exists, insert one row.

    Every failure surfaces as a distinct error type (ImageDownloadError,
    InvalidContentTypeError, ImageResizeError, EmbeddingError, StorageError).
    """

    def __init__(
        self,
        embedder: EmbeddingBackend,
        store: DocumentStore,
        http_client: httpx.AsyncClient,
        *,
        allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
        max_bytes: int = MAX_IMAGE_BYTES,
        max_dimension: int = MAX_DIMENSION,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.http = http_client
        self.allowed_types = tuple(allowed_types)
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension

    async def load_image(self, url: str) -> bytes:
        """Download ``url`` and bound its dimensions for the model."""
        raw = await download_image(
            self.http, url, allowed_types=self.allowed_types, max_bytes=self.max_bytes
        )
        return await asyncio.to_thread(resize_image, raw, self.max_dimension)

    async def embed_and_store(self, descriptor: DocumentDescriptor) -> Document:
        image: Optional[bytes] = None
        if descriptor.url:
            image = await self.load_image(descriptor.url)

        vector = await self.embedder.embed(image=image, text=descriptor.desc)

        await asyncio.to_thread(self.store.ensure_collection)
        doc = await asyncio.to_thread(
            self.store.insert,
            vector,
            descriptor.url,
            descriptor.desc,
            descriptor.metadata,
        )
        logger.info("Stored document %s (url=%s)", doc.id, descriptor.url)
        return doc
