"""
Tests for batch ingestion.

A batch always yields one result per submitted item, in submission order,
and a failing item never affects its siblings.
"""

import asyncio

import pytest

from conftest import FakeDocumentStore, FakeEmbedder
from docsearch.ingestion import EmbeddingGateway, IngestionService
from docsearch.ingestion.service import GENERIC_ITEM_ERROR
from docsearch.validation import DocumentDescriptor


@pytest.fixture
def gateway(embedder, document_store, http_client) -> EmbeddingGateway:
    return EmbeddingGateway(embedder, document_store, http_client)


@pytest.fixture
def service(gateway) -> IngestionService:
    return IngestionService(gateway, concurrency=2)


class TestIngestionService:
    def test_mixed_batch_is_index_aligned(self, service, document_store):
        """url item and text item succeed; the empty item fails on its own."""
        items = [{"url": "https://img.test/a.png"}, {"desc": "a cat"}, {}]

        results = asyncio.run(service.ingest(items))

        assert len(results) == 3
        assert [r.success for r in results] == [True, True, False]
        assert results[0].url == "https://img.test/a.png"
        assert results[1].desc == "a cat"
        assert results[2].errors == "At least one of url or desc must be provided."
        assert len(document_store.rows) == 2

    def test_empty_descriptor_is_never_embedded(self, service, embedder, document_store):
        results = asyncio.run(service.ingest([{}]))
        assert results[0].success is False
        assert embedder.calls == []
        assert document_store.rows == {}

    def test_non_image_url_creates_no_row(self, service, embedder, document_store):
        results = asyncio.run(service.ingest([{"url": "https://img.test/page.html"}]))

        assert results[0].success is False
        assert "Invalid content-type text/html" in results[0].errors
        assert embedder.calls == []
        assert document_store.rows == {}

    def test_oversized_remote_image_is_rejected(self, service, document_store):
        results = asyncio.run(service.ingest([{"url": "https://img.test/huge.png"}]))
        assert results[0].success is False
        assert results[0].errors == "File size exceeds the limit of 5 MB."
        assert document_store.rows == {}

    def test_unreachable_url(self, service):
        results = asyncio.run(service.ingest([{"url": "https://img.test/missing.png"}]))
        assert results[0].success is False
        assert "status: 404" in results[0].errors

    def test_head_refused_falls_back_to_get(self, service, document_store):
        results = asyncio.run(service.ingest([{"url": "https://img.test/no-head.png"}]))
        assert results[0].success is True
        assert len(document_store.rows) == 1

    def test_order_preserved_across_many_items(self, service, document_store):
        items = [{"desc": f"item {i}"} if i % 3 else {} for i in range(12)]

        results = asyncio.run(service.ingest(items))

        assert len(results) == 12
        for i, result in enumerate(results):
            assert result.success is bool(i % 3)
            if i % 3:
                assert result.desc == f"item {i}"

    def test_embedding_failure_is_per_item(self, document_store, http_client):
        gateway = EmbeddingGateway(FakeEmbedder(fail=True), document_store, http_client)
        service = IngestionService(gateway)

        results = asyncio.run(service.ingest([{"desc": "a"}, {"desc": "b"}]))

        assert [r.success for r in results] == [False, False]
        assert results[0].errors == "Error calling the embedding backend"
        assert document_store.rows == {}

    def test_storage_failure_is_per_item(self, embedder, http_client):
        store = FakeDocumentStore(fail_insert=True)
        service = IngestionService(EmbeddingGateway(embedder, store, http_client))

        results = asyncio.run(service.ingest([{"desc": "a"}]))

        assert results[0].success is False
        assert results[0].errors == "Failed to store document"

    def test_unexpected_error_gets_generic_message(self, service, gateway, monkeypatch):
        async def boom(descriptor):
            raise KeyError("internal detail")

        monkeypatch.setattr(gateway, "embed_and_store", boom)

        results = asyncio.run(service.ingest([{"desc": "a"}]))
        assert results[0].errors == GENERIC_ITEM_ERROR

    def test_metadata_is_echoed_and_stored(self, service, document_store):
        results = asyncio.run(service.ingest([{"desc": "a", "metadata": {"k": "v"}}]))
        assert results[0].metadata == {"k": "v"}
        assert list(document_store.rows.values())[0].metadata == {"k": "v"}

    def test_non_object_item(self, service):
        results = asyncio.run(service.ingest(["https://img.test/a.png"]))
        assert results[0].success is False
        assert results[0].url is None

    def test_empty_batch(self, service):
        assert asyncio.run(service.ingest([])) == []


class TestEmbeddingGateway:
    def test_image_and_text_are_embedded_together(self, gateway, embedder, document_store):
        descriptor = DocumentDescriptor(url="https://img.test/b.jpg", desc="blue square")

        doc = asyncio.run(gateway.embed_and_store(descriptor))

        assert doc.id == 1
        assert embedder.calls[0]["text"] == "blue square"
        assert embedder.calls[0]["image"]
        assert document_store.ensure_calls == 1
        assert document_store.rows[1].url == "https://img.test/b.jpg"

    def test_text_only_skips_download(self, gateway, embedder):
        asyncio.run(gateway.embed_and_store(DocumentDescriptor(desc="only text")))
        assert embedder.calls == [{"image": None, "text": "only text"}]
