"""Service wiring for the API.

Each factory builds its object once per process. Routes receive them through
``Depends`` so tests can swap any of them via ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

import httpx

from ..config import get_settings
from ..ingestion import EmbeddingGateway, IngestionService
from ..search import SearchService, VectorSearchBackend
from ..storage import MinioObjectStore, StagingArea
from ..vectorstore.data_store import DocumentStore
from ..vectorstore.embeddings import Embedder


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(
        timeout=settings.download_timeout,
        headers={"User-Agent": "docsearch"},
    )


@lru_cache(maxsize=1)
def get_embedder() -> Embedder:
    return Embedder(settings=get_settings())


@lru_cache(maxsize=1)
def get_document_store() -> DocumentStore:
    settings = get_settings()
    return DocumentStore(collection=settings.collection_name, dim=settings.embedding_dim)


@lru_cache(maxsize=1)
def get_staging_area() -> StagingArea:
    return StagingArea(MinioObjectStore.from_settings(get_settings()))


@lru_cache(maxsize=1)
def get_ingestion_service() -> IngestionService:
    settings = get_settings()
    gateway = EmbeddingGateway(
        get_embedder(),
        get_document_store(),
        get_http_client(),
        allowed_types=settings.allowed_image_types,
        max_bytes=settings.max_image_bytes,
        max_dimension=settings.max_image_dimension,
    )
    return IngestionService(gateway, concurrency=settings.ingest_concurrency)


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    settings = get_settings()
    backend = VectorSearchBackend(
        get_embedder(),
        get_document_store(),
        get_http_client(),
        allowed_types=settings.allowed_image_types,
        max_bytes=settings.max_image_bytes,
        max_dimension=settings.max_image_dimension,
    )
    return SearchService(
        backend,
        get_staging_area(),
        allowed_types=settings.allowed_image_types,
        max_bytes=settings.max_image_bytes,
    )


async def close_clients() -> None:
    """Close network clients that were actually created."""
    if get_embedder.cache_info().currsize:
        await get_embedder().aclose()
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
