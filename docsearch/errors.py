from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class DocSearchError(Exception):
    """Base class for every error raised by docsearch."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class ValidationError(DocSearchError):
    """Malformed or out-of-range input. Carries one entry per violated field."""

    def __init__(self, errors: List[FieldError], message: Optional[str] = None) -> None:
        self.errors = list(errors)
        super().__init__(message or "; ".join(e.message for e in self.errors) or "Invalid input")

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)])

    def issues(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.errors]


class InvalidContentTypeError(ValidationError):
    """A referenced or uploaded binary is not an allowed image type."""

    def __init__(self, content_type: Optional[str], url: Optional[str] = None) -> None:
        self.content_type = content_type
        self.url = url
        where = f" for url {url}" if url else ""
        message = f"Invalid content-type {content_type}{where}. Only JPEG and PNG images are allowed."
        super().__init__([FieldError("url" if url else "image", message)], message)


class NotFoundError(DocSearchError):
    def __init__(self, message: str = "Document Not Found") -> None:
        super().__init__(message)


class SearchQueryError(DocSearchError):
    """The search backend rejected the query itself (malformed or empty)."""


class UpstreamDependencyError(DocSearchError):
    """A downstream system (embedding, search, object store, vector store) failed.

    ``message`` is safe to show to callers; the original exception is chained.
    """


class ImageDownloadError(UpstreamDependencyError):
    pass


class ImageResizeError(UpstreamDependencyError):
    pass


class EmbeddingError(UpstreamDependencyError):
    pass


class StorageError(UpstreamDependencyError):
    pass


class ObjectStoreError(UpstreamDependencyError):
    pass
