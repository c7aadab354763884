from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from ...errors import ValidationError
from ...search import SearchService
from ...validation import (
    ImageUpload,
    SearchRequest,
    check_image,
    parse_json_search,
    parse_multipart_search,
)
from ..dependencies import get_search_service
from ..schemas import ErrorResponse, SearchJSONBody, SearchResponseModel


router = APIRouter(prefix="/search", tags=["search"])

_MULTIPART_SCHEMA = {
    "type": "object",
    "properties": {
        "image": {"type": "string", "format": "binary", "description": "JPEG or PNG, at most 5 MB."},
        "desc": {"type": "string"},
        "threshold": {"type": "number", "minimum": 0, "maximum": 1},
        "topK": {"type": "integer", "minimum": 1},
    },
}


async def _read_image(part: Any, service: SearchService) -> Optional[ImageUpload]:
    # Browsers send an empty string for an untouched file input.
    if not isinstance(part, UploadFile):
        return None
    if part.size is not None and part.size > service.max_bytes:
        raise ValidationError(
            check_image(
                part.content_type,
                part.size,
                allowed_types=service.allowed_types,
                max_bytes=service.max_bytes,
            )
        )
    data = await part.read()
    return ImageUpload(data=data, content_type=part.content_type or "", filename=part.filename)


async def parse_search_request(request: Request, service: SearchService) -> SearchRequest:
    """Decode a JSON or multipart search body into a validated request."""
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError.single("body", "Request body is not valid JSON.") from None
        return parse_json_search(body)

    if content_type.startswith("multipart/form-data"):
        async with request.form() as form:
            image = await _read_image(form.get("image"), service)
            fields = {k: v for k, v in form.items() if isinstance(v, str)}
        return parse_multipart_search(
            fields,
            image,
            allowed_types=service.allowed_types,
            max_bytes=service.max_bytes,
        )

    raise ValidationError.single(
        "content-type", "Expected application/json or multipart/form-data."
    )


@router.post(
    "",
    summary="Search by image, text, or both",
    response_model=SearchResponseModel,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed or empty query"},
        500: {"model": ErrorResponse, "description": "Search backend failure"},
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {"schema": SearchJSONBody.model_json_schema()},
                "multipart/form-data": {"schema": _MULTIPART_SCHEMA},
            },
        }
    },
)
async def search(
    request: Request,
    service: SearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    """Nearest documents to an image (URL or upload) and/or a text description.

    An uploaded image is staged in object storage for the duration of the
    request and removed before the response is sent.
    """
    search_request = await parse_search_request(request, service)
    response = await service.search(search_request)
    return response.to_dict()
