"""Document ingestion.

- EmbeddingGateway: download/resize, embed and persist one accepted document
- IngestionService: validate and ingest a batch with per-item isolation
"""

from .gateway import EmbeddingGateway
from .service import IngestionResult, IngestionService

__all__ = ["EmbeddingGateway", "IngestionResult", "IngestionService"]
