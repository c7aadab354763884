from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DocumentModel(BaseModel):
    id: int = Field(..., description="Identifier assigned by the store.")
    url: Optional[str] = Field(None, description="Source image URL, if any.")
    description: Optional[str] = Field(None, description="Free-text description, if any.")
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Caller-supplied metadata stored alongside the vector."
    )


class DocumentListResponse(BaseModel):
    documents: List[DocumentModel]
    limit: int
    offset: int
    count: int


class DocumentResponse(BaseModel):
    document: DocumentModel


class IngestionResultModel(BaseModel):
    url: Optional[str] = None
    desc: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    success: bool
    errors: Optional[str] = Field(
        None, description="Why the document was not stored (only when success is false)."
    )


class SearchHitModel(DocumentModel):
    score: float = Field(..., description="Similarity to the query; higher is closer.")


class SearchResponseModel(BaseModel):
    hits: List[SearchHitModel]
    count: int


class SearchJSONBody(BaseModel):
    """JSON search body. At least one of url or desc is required."""

    url: Optional[str] = Field(None, description="URL of a JPEG or PNG image to search with.")
    desc: Optional[str] = Field(None, description="Text to search with.")
    threshold: float = Field(0.0, ge=0.0, le=1.0, description="Minimum similarity of returned hits.")
    topK: int = Field(10, ge=1, description="Maximum number of hits.")


class Issue(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    issues: Optional[List[Issue]] = None
