from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from ...ingestion import IngestionService
from ...validation import validate_create_body, validate_document_id, validate_pagination
from ...vectorstore.data_store import DocumentStore
from ..dependencies import get_document_store, get_ingestion_service
from ..schemas import (
    DocumentListResponse,
    DocumentResponse,
    ErrorResponse,
    IngestionResultModel,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/document", tags=["documents"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    500: {"model": ErrorResponse, "description": "Storage failure"},
}


@router.get(
    "",
    summary="List stored documents",
    response_model=DocumentListResponse,
    responses=_ERRORS,
)
async def list_documents(
    limit: Optional[str] = Query(None, description="Page size (non-negative integer)."),
    offset: Optional[str] = Query(None, description="Rows to skip (non-negative integer)."),
    store: DocumentStore = Depends(get_document_store),
) -> Dict[str, Any]:
    page = validate_pagination(limit, offset)
    await asyncio.to_thread(store.ensure_collection)
    documents = await asyncio.to_thread(store.list, limit=page.limit, offset=page.offset)
    return {
        "documents": [d.to_dict() for d in documents],
        "limit": page.limit,
        "offset": page.offset,
        "count": len(documents),
    }


@router.get(
    "/{doc_id}",
    summary="Fetch one document",
    response_model=DocumentResponse,
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "Unknown id"}},
)
async def get_document(
    doc_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> Dict[str, Any]:
    ident = validate_document_id(doc_id)
    await asyncio.to_thread(store.ensure_collection)
    document = await asyncio.to_thread(store.get, ident)
    return {"document": document.to_dict()}


@router.post(
    "",
    summary="Embed and store a batch of documents",
    response_model=List[IngestionResultModel],
    responses=_ERRORS,
)
async def create_documents(
    payload: Any = Body(
        ...,
        examples=[
            {
                "documents": [
                    {"url": "https://example.com/cat.png", "desc": "a cat"},
                    {"desc": "text only"},
                ]
            }
        ],
    ),
    service: IngestionService = Depends(get_ingestion_service),
) -> List[Dict[str, Any]]:
    """Each item is validated and stored on its own.

    The response lists one result per submitted item, in submission order.
    A failed item does not prevent the others from being stored.
    """
    items = validate_create_body(payload)
    results = await service.ingest(items)
    return [r.to_dict() for r in results]


@router.delete(
    "/{doc_id}",
    summary="Delete one document",
    response_model=DocumentResponse,
    responses={**_ERRORS, 404: {"model": ErrorResponse, "description": "Unknown id"}},
)
async def delete_document(
    doc_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> Dict[str, Any]:
    ident = validate_document_id(doc_id)
    await asyncio.to_thread(store.ensure_collection)
    document = await asyncio.to_thread(store.delete, ident)
    logger.info("Deleted document %s", ident)
    return {"document": document.to_dict()}
