"""
Shared fakes for the docsearch test-suite.

Nothing here talks to Milvus, MinIO or a model endpoint: the object store,
embedder and document store are in-memory stand-ins with the same call
surface, and remote images are served by an httpx.MockTransport.
"""

import io
import threading
from typing import Any, Dict, List, Optional

import httpx
import pytest
from PIL import Image

from docsearch.errors import EmbeddingError, NotFoundError, StorageError
from docsearch.vectorstore.schemas import Document, SearchHit

DIM = 4


def make_png(width: int = 8, height: int = 8, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_jpeg(width: int = 8, height: int = 8, color=(30, 30, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# FAKES
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """ObjectStore that keeps blobs in a dict and records every call."""

    def __init__(self, fail_put: bool = False, fail_delete: bool = False) -> None:
        self.objects: Dict[str, bytes] = {}
        self.puts: List[str] = []
        self.deletes: List[str] = []
        self.fail_put = fail_put
        self.fail_delete = fail_delete
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise RuntimeError("bucket unavailable")
        with self._lock:
            self.puts.append(key)
            self.objects[key] = data

    def url_for(self, key: str) -> str:
        return f"https://objects.test/{key}"

    def delete(self, key: str) -> None:
        with self._lock:
            self.deletes.append(key)
        if self.fail_delete:
            raise RuntimeError("delete refused")
        with self._lock:
            self.objects.pop(key, None)


class FakeEmbedder:
    """EmbeddingBackend returning a deterministic vector per input."""

    def __init__(self, dim: int = DIM, fail: bool = False) -> None:
        self.dim = dim
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def embed(self, *, image: Optional[bytes] = None, text: Optional[str] = None) -> List[float]:
        self.calls.append({"image": image, "text": text})
        if self.fail:
            raise EmbeddingError("Error calling the embedding backend")
        seed = float(len(text or "") + len(image or b""))
        return [1.0, seed, 0.0, 0.5][: self.dim]


class FakeDocumentStore:
    """DocumentStore keeping rows in memory with auto-incrementing ids."""

    def __init__(self, dim: int = DIM, fail_insert: bool = False) -> None:
        self.dim = dim
        self.rows: Dict[int, Document] = {}
        self.ensure_calls = 0
        self.fail_insert = fail_insert
        self.search_hits: List[SearchHit] = []
        self.search_calls: List[Dict[str, Any]] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def ensure_collection(self) -> None:
        self.ensure_calls += 1

    def insert(self, embedding, url=None, description=None, metadata=None) -> Document:
        if self.fail_insert:
            raise StorageError("Failed to store document")
        with self._lock:
            doc = Document(
                id=self._next_id,
                url=url,
                description=description,
                metadata=metadata,
                embedding=list(embedding),
            )
            self.rows[doc.id] = doc
            self._next_id += 1
        return doc

    def get(self, doc_id: int) -> Document:
        if doc_id not in self.rows:
            raise NotFoundError()
        return self.rows[doc_id]

    def list(self, limit: int, offset: int = 0) -> List[Document]:
        ordered = [self.rows[k] for k in sorted(self.rows)]
        return ordered[offset : offset + limit]

    def delete(self, doc_id: int) -> Document:
        doc = self.get(doc_id)
        del self.rows[doc_id]
        return doc

    def search(self, vector, *, limit: int = 10, threshold: float = 0.0) -> List[SearchHit]:
        self.search_calls.append({"vector": list(vector), "limit": limit, "threshold": threshold})
        return [h for h in self.search_hits if h.score >= threshold][:limit]


def image_handler(request: httpx.Request) -> httpx.Response:
    """Serve a tiny fixed web of test resources."""
    host_path = f"{request.url.host}{request.url.path}"
    if request.url.host == "objects.test":
        # Staged uploads, as resolved through FakeObjectStore.url_for.
        return httpx.Response(200, headers={"content-type": "image/png"}, content=make_png())
    if host_path == "img.test/a.png":
        body = make_png()
        return httpx.Response(
            200,
            headers={"content-type": "image/png", "content-length": str(len(body))},
            content=b"" if request.method == "HEAD" else body,
        )
    if host_path == "img.test/b.jpg":
        body = make_jpeg()
        return httpx.Response(200, headers={"content-type": "image/jpeg"}, content=body)
    if host_path == "img.test/page.html":
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html></html>")
    if host_path == "img.test/huge.png":
        return httpx.Response(
            200,
            headers={"content-type": "image/png", "content-length": str(50 * 1024 * 1024)},
            content=b"",
        )
    if host_path == "img.test/no-head.png":
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(200, headers={"content-type": "image/png"}, content=make_png())
    return httpx.Response(404)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def http_client() -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by image_handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(image_handler))
