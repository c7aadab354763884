"""Search application layer.

- SearchService: normalizes a JSON or multipart search request, stages any
  uploaded image, dispatches the canonical query and maps the outcome
- SearchBackend / VectorSearchBackend: the downstream query contract and its
  vector-store implementation
"""

from .backend import SearchBackend, VectorSearchBackend
from .service import SearchResponse, SearchService

__all__ = ["SearchBackend", "SearchResponse", "SearchService", "VectorSearchBackend"]
