from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..errors import SearchQueryError, UpstreamDependencyError
from ..storage.object_store import StagedObject, StagingArea
from ..validation import (
    ALLOWED_IMAGE_TYPES,
    MAX_IMAGE_BYTES,
    MultipartSearchRequest,
    SearchQuery,
    SearchRequest,
    validate_upload,
)
from ..vectorstore.schemas import SearchHit
from .backend import SearchBackend

logger = logging.getLogger(__name__)

GENERIC_SEARCH_ERROR = "Internal Server Error."


@dataclass
class SearchResponse:
    hits: List[SearchHit] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.hits)

    def to_dict(self) -> Dict[str, Any]:
        return {"hits": [h.to_dict() for h in self.hits], "count": self.count}


class SearchService:
    """Application-layer search orchestration.

    received -> normalized -> [staged] -> dispatched -> succeeded | rejected | failed

    An uploaded image is staged in object storage and its URL stands in for
    the query's ``url``. Whatever the outcome, the staged object is deleted
    exactly once before the call returns. Backend client errors are re-raised
    as SearchQueryError with the backend's message; anything else becomes an
    UpstreamDependencyError carrying a generic message.
    """

    def __init__(
        self,
        backend: SearchBackend,
        staging: StagingArea,
        *,
        allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
        max_bytes: int = MAX_IMAGE_BYTES,
    ) -> None:
        self.backend = backend
        self.staging = staging
        self.allowed_types = tuple(allowed_types)
        self.max_bytes = max_bytes

    @staticmethod
    def normalize(request: SearchRequest, staged: Optional[StagedObject] = None) -> SearchQuery:
        """Resolve a JSON or multipart request into the canonical query."""
        url = staged.url if staged is not None else getattr(request, "url", None)
        query = SearchQuery(
            url=url,
            desc=request.desc,
            threshold=request.threshold,
            top_k=request.top_k,
        )
        if not query.url and not query.desc:
            raise SearchQueryError("At least one of url or desc must be provided.")
        return query

    async def _dispatch(self, query: SearchQuery) -> List[SearchHit]:
        logger.debug(
            "Dispatching search (image=%s, text=%s, topK=%s, threshold=%s)",
            bool(query.url),
            bool(query.desc),
            query.top_k,
            query.threshold,
        )
        try:
            return await self.backend.search(query)
        except SearchQueryError as e:
            logger.info("Search rejected by backend: %s", e.message)
            raise
        except Exception as e:
            logger.exception("Search backend failed")
            raise UpstreamDependencyError(GENERIC_SEARCH_ERROR) from e

    async def search(self, request: SearchRequest) -> SearchResponse:
        upload = request.image if isinstance(request, MultipartSearchRequest) else None
        if upload is not None:
            validate_upload(upload, allowed_types=self.allowed_types, max_bytes=self.max_bytes)
        elif not getattr(request, "url", None) and not request.desc:
            # Nothing to stage and nothing to search with.
            raise SearchQueryError("At least one of url or desc must be provided.")

        async with self.staging.staged(upload) as staged:
            query = self.normalize(request, staged)
            hits = await self._dispatch(query)

        logger.info("Search returned %d hits", len(hits))
        return SearchResponse(hits=hits)
