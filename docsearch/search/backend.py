from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from ..errors import ImageResizeError, SearchQueryError, ValidationError
from ..ingestion.images import MAX_DIMENSION, download_image, resize_image
from ..validation import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES, SearchQuery
from ..vectorstore.data_store import DocumentStore
from ..vectorstore.embeddings import EmbeddingBackend
from ..vectorstore.schemas import SearchHit


@runtime_checkable
class SearchBackend(Protocol):
    """Runs a canonical query.

    Raises SearchQueryError when the query itself is unusable; any other
    exception is a backend failure.
    """

    async def search(self, query: SearchQuery) -> List[SearchHit]: ...


class VectorSearchBackend:
    """Nearest-neighbour search over stored document embeddings."""

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

    async def _query_image(self, url: str) -> bytes:
        try:
            raw = await download_image(
                self.http, url, allowed_types=self.allowed_types, max_bytes=self.max_bytes
            )
            return await asyncio.to_thread(resize_image, raw, self.max_dimension)
        except ValidationError as e:
            raise SearchQueryError(e.message) from e
        except ImageResizeError as e:
            raise SearchQueryError("The query image could not be decoded.") from e

    async def search(self, query: SearchQuery) -> List[SearchHit]:
        if not query.url and not query.desc:
            raise SearchQueryError("At least one of url or desc must be provided.")
        if query.top_k < 1:
            raise SearchQueryError("topK must be a positive integer.")
        if not 0.0 <= query.threshold <= 1.0:
            raise SearchQueryError("threshold must be between 0 and 1.")

        image: Optional[bytes] = None
        if query.url:
            image = await self._query_image(query.url)
        vector = await self.embedder.embed(image=image, text=query.desc)

        await asyncio.to_thread(self.store.ensure_collection)
        return await asyncio.to_thread(
            self.store.search, vector, limit=query.top_k, threshold=query.threshold
        )
