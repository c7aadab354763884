import logging
from typing import Any, Dict, List, Optional, Sequence

from pymilvus import DataType, MilvusClient
from pymilvus.exceptions import MilvusException

from ..errors import NotFoundError, StorageError
from .milvus_client import get_milvus_client
from .schemas import Document, SearchHit

logger = logging.getLogger(__name__)

# Milvus caps offset + limit for a single query.
MAX_QUERY_WINDOW = 16384

OUTPUT_FIELDS = ["id", "url", "description", "metadata"]


class CollectionManager:
    """Manages the Milvus collection lifecycle and schema for document vectors."""

    def __init__(self, client: MilvusClient, name: str = "documents", *, dim: int = 1024) -> None:
        self.client = client
        self.name = name
        self.dim = dim

    def _build_schema(self):
        schema = MilvusClient.create_schema(auto_id=True, enable_dynamic_field=False)
        # Integer ids assigned by the store
        schema.add_field(field_name="id", datatype=DataType.INT64, is_primary=True)
        schema.add_field(
            field_name="embedding", datatype=DataType.FLOAT_VECTOR, dim=self.dim
        )
        schema.add_field(
            field_name="url", datatype=DataType.VARCHAR, max_length=2048, nullable=True
        )
        schema.add_field(
            field_name="description",
            datatype=DataType.VARCHAR,
            max_length=8000,
            nullable=True,
        )
        # Optional metadata stored as JSON (not embedded)
        schema.add_field(field_name="metadata", datatype=DataType.JSON, nullable=True)
        return schema

    def ensure_collection(self) -> None:
        """Create the collection and its vector index if missing.

        Safe to call on every write and from concurrent callers.
        """
        if self.client.has_collection(self.name):
            return

        index_params = self.client.prepare_index_params()
        index_params.add_index(
            field_name="embedding",
            index_name="embedding_index",
            index_type="AUTOINDEX",
            metric_type="COSINE",
        )
        try:
            self.client.create_collection(
                collection_name=self.name,
                schema=self._build_schema(),
                index_params=index_params,
            )
            logger.info("Created collection '%s' (dim=%s).", self.name, self.dim)
        except MilvusException:
            # Lost a creation race: fine as long as the collection now exists.
            if not self.client.has_collection(self.name):
                raise
            logger.debug("Collection '%s' was created concurrently.", self.name)


class DocumentStore:
    """CRUD and nearest-neighbour search; delegates lifecycle to a CollectionManager."""

    def __init__(
        self,
        client: Optional[MilvusClient] = None,
        collection: str = "documents",
        *,
        dim: int = 1024,
        manager: Optional[CollectionManager] = None,
    ) -> None:
        self.client = client or get_milvus_client()
        self.collection = collection
        self.dim = dim
        self.manager = manager or CollectionManager(self.client, name=self.collection, dim=dim)

    def ensure_collection(self) -> None:
        try:
            self.manager.ensure_collection()
        except Exception as e:
            raise StorageError("Failed to initialize the document store") from e

    def insert(
        self,
        embedding: Sequence[float],
        url: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        if len(embedding) != self.dim:
            raise ValueError(
                f"embedding has dim {len(embedding)} but collection expects {self.dim}"
            )
        row = {
            "embedding": list(embedding),
            "url": url,
            "description": description,
            "metadata": metadata,
        }
        try:
            result = self.client.insert(collection_name=self.collection, data=[row])
        except Exception as e:
            raise StorageError("Failed to store document") from e

        ids = list(result.get("ids") or [])
        if not ids:
            raise StorageError("Document store did not return an id")
        return Document(
            id=int(ids[0]),
            url=url,
            description=description,
            metadata=metadata,
            embedding=list(embedding),
        )

    def get(self, doc_id: int) -> Document:
        try:
            rows = self.client.get(
                collection_name=self.collection, ids=[doc_id], output_fields=OUTPUT_FIELDS
            )
        except Exception as e:
            raise StorageError("Failed to read document") from e
        if not rows:
            raise NotFoundError()
        return _row_to_document(rows[0])

    def list(self, limit: int, offset: int = 0) -> List[Document]:
        if offset >= MAX_QUERY_WINDOW or limit == 0:
            return []
        window = min(limit, MAX_QUERY_WINDOW - offset)
        try:
            rows = self.client.query(
                collection_name=self.collection,
                filter="id >= 0",
                output_fields=OUTPUT_FIELDS,
                limit=window,
                offset=offset,
            )
        except Exception as e:
            raise StorageError("Failed to list documents") from e
        docs = [_row_to_document(row) for row in rows]
        docs.sort(key=lambda d: d.id)
        return docs

    def delete(self, doc_id: int) -> Document:
        doc = self.get(doc_id)
        try:
            self.client.delete(collection_name=self.collection, ids=[doc_id])
        except Exception as e:
            raise StorageError("Failed to delete document") from e
        return doc

    def search(
        self,
        vector: Sequence[float],
        *,
        limit: int = 10,
        threshold: float = 0.0,
    ) -> List[SearchHit]:
        if len(vector) != self.dim:
            raise ValueError(
                f"query vector has dim {len(vector)} but collection expects {self.dim}"
            )
        limit = min(limit, MAX_QUERY_WINDOW)
        try:
            results = self.client.search(
                collection_name=self.collection,
                data=[list(vector)],
                anns_field="embedding",
                limit=limit,
                output_fields=OUTPUT_FIELDS[1:],
                search_params={"metric_type": "COSINE"},
            )
        except Exception as e:
            raise StorageError("Vector search failed") from e

        hits: List[SearchHit] = []
        for hit in results[0] if results else []:
            score = float(hit.get("distance", 0.0))
            # COSINE distance is a similarity: higher is closer.
            if score < threshold:
                continue
            entity = dict(hit.get("entity") or {})
            entity["id"] = hit.get("id")
            hits.append(SearchHit(document=_row_to_document(entity), score=score))
        return hits[:limit]


def _row_to_document(row: Dict[str, Any]) -> Document:
    metadata = row.get("metadata")
    return Document(
        id=int(row["id"]),
        url=row.get("url"),
        description=row.get("description"),
        metadata=metadata if isinstance(metadata, dict) else None,
    )
