"""Request validation shared by the HTTP surface and the orchestrators.

Everything here is local and side-effect free: payloads are parsed into typed
values or a :class:`~docsearch.errors.ValidationError` listing every violated
field. Uploaded images are checked for type and size here so that cheap
rejections happen before any storage or network call.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import (
    AliasChoices,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from .errors import FieldError, ValidationError

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png")

# Default page size when the caller does not ask for one: effectively unbounded.
UNBOUNDED_LIMIT = 1_000_000

# Milvus INT64 primary keys.
MAX_DOCUMENT_ID = 2**63 - 1

DEFAULT_THRESHOLD = 0.0
DEFAULT_TOP_K = 10

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        _URL_ADAPTER.validate_python(value)
    except PydanticValidationError:
        raise ValueError("Invalid URL format")
    # Keep the caller's spelling; pydantic normalizes (e.g. adds a trailing slash).
    return value


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value if value.strip() else None


def _field_errors(exc: PydanticValidationError, default_field: str = "body") -> List[FieldError]:
    errors: List[FieldError] = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "__root__"]
        message = str(err.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append(FieldError(".".join(loc) or default_field, message))
    return errors


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentDescriptor(BaseModel):
    """One document submitted for ingestion."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: Optional[str] = None
    desc: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("desc", "description")
    )
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("url")
    @classmethod
    def _valid_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @field_validator("desc")
    @classmethod
    def _strip_blank_desc(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _require_url_or_desc(self) -> "DocumentDescriptor":
        if not self.url and not self.desc:
            raise ValueError("At least one of url or desc must be provided.")
        return self


def validate_descriptor(raw: Any) -> DocumentDescriptor:
    if not isinstance(raw, Mapping):
        raise ValidationError.single("document", "Each document must be a JSON object.")
    try:
        return DocumentDescriptor.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc, default_field="document")) from None


class CreateDocumentsBody(BaseModel):
    """Request body of ``POST /document``.

    Items are kept raw: each one is validated on its own so that a bad item
    produces a per-item failure instead of rejecting the whole request.
    """

    documents: List[Any]


def validate_create_body(raw: Any) -> List[Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError.single("body", "Expected a JSON object.")
    try:
        return CreateDocumentsBody.model_validate(dict(raw)).documents
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from None


@dataclass(frozen=True)
class PaginationParams:
    limit: int = UNBOUNDED_LIMIT
    offset: int = 0


def _non_negative_int(field: str, raw: Any, default: int, errors: List[FieldError]) -> int:
    if raw is None or (isinstance(raw, str) and raw == ""):
        return default
    if isinstance(raw, bool):
        errors.append(FieldError(field, f"{field} must be a non-negative integer"))
        return default
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not _INTEGER_RE.fullmatch(text):
            errors.append(FieldError(field, f"{field} must be a non-negative integer"))
            return default
        value = int(text)
    if value < 0:
        errors.append(FieldError(field, f"{field} must be a non-negative integer"))
        return default
    return value


def validate_pagination(limit: Any = None, offset: Any = None) -> PaginationParams:
    errors: List[FieldError] = []
    parsed_limit = _non_negative_int("limit", limit, UNBOUNDED_LIMIT, errors)
    parsed_offset = _non_negative_int("offset", offset, 0, errors)
    if errors:
        raise ValidationError(errors)
    return PaginationParams(limit=parsed_limit, offset=parsed_offset)


def validate_document_id(raw: Any) -> int:
    errors: List[FieldError] = []
    value = _non_negative_int("id", raw, -1, errors)
    if not errors and value > MAX_DOCUMENT_ID:
        errors.append(FieldError("id", "Invalid resource ID"))
    if errors or value < 0:
        raise ValidationError(errors or [FieldError("id", "Invalid resource ID")])
    return value


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    content_type: str
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def check_image(
    content_type: Optional[str],
    size: Optional[int],
    *,
    field: str = "image",
    allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> List[FieldError]:
    """Return the problems with an image's declared type and size (empty when valid)."""
    errors: List[FieldError] = []
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime not in allowed_types:
        errors.append(
            FieldError(field, "Invalid file type. Only JPEG and PNG images are allowed.")
        )
    if size is not None and size > max_bytes:
        errors.append(
            FieldError(field, f"File size exceeds the limit of {max_bytes // (1024 * 1024)} MB.")
        )
    return errors


def validate_upload(
    upload: ImageUpload,
    *,
    allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> ImageUpload:
    errors = check_image(
        upload.content_type, upload.size, allowed_types=allowed_types, max_bytes=max_bytes
    )
    if errors:
        raise ValidationError(errors)
    return upload


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class _SearchParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    desc: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("desc", "description")
    )
    threshold: float = Field(DEFAULT_THRESHOLD, ge=0.0, le=1.0)
    top_k: int = Field(
        DEFAULT_TOP_K, ge=1, validation_alias=AliasChoices("topK", "top_k")
    )

    @field_validator("desc")
    @classmethod
    def _strip_blank_desc(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @model_validator(mode="before")
    @classmethod
    def _drop_unset(cls, data: Any) -> Any:
        # null and, for multipart forms, empty strings mean "use the default"
        if isinstance(data, Mapping):
            return {
                k: v
                for k, v in data.items()
                if v is not None and not (isinstance(v, str) and not v.strip() and k != "desc")
            }
        return data


class JsonSearchRequest(_SearchParams):
    kind: Literal["json"] = "json"
    url: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _valid_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @model_validator(mode="after")
    def _require_url_or_desc(self) -> "JsonSearchRequest":
        if not self.url and not self.desc:
            raise ValueError("At least one of url or desc must be provided.")
        return self


class MultipartSearchRequest(_SearchParams):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["multipart"] = "multipart"
    image: Optional[ImageUpload] = None

    @model_validator(mode="after")
    def _require_image_or_desc(self) -> "MultipartSearchRequest":
        if self.image is None and not self.desc:
            raise ValueError("At least one of image or desc must be provided.")
        return self


SearchRequest = Union[JsonSearchRequest, MultipartSearchRequest]


@dataclass(frozen=True)
class SearchQuery:
    """Encoding-independent form of a search request, as sent to the backend."""

    url: Optional[str] = None
    desc: Optional[str] = None
    threshold: float = DEFAULT_THRESHOLD
    top_k: int = DEFAULT_TOP_K


def parse_json_search(body: Any) -> JsonSearchRequest:
    if not isinstance(body, Mapping):
        raise ValidationError.single("body", "Expected a JSON object.")
    try:
        return JsonSearchRequest.model_validate({**body, "kind": "json"})
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from None


def parse_multipart_search(
    fields: Mapping[str, Any],
    image: Optional[ImageUpload] = None,
    *,
    allowed_types: Sequence[str] = ALLOWED_IMAGE_TYPES,
    max_bytes: int = MAX_IMAGE_BYTES,
) -> MultipartSearchRequest:
    errors: List[FieldError] = []
    # An empty file part means "no image".
    if image is not None and image.size == 0:
        image = None
    if image is not None:
        errors.extend(
            check_image(image.content_type, image.size, allowed_types=allowed_types, max_bytes=max_bytes)
        )

    data = {k: v for k, v in fields.items() if k in ("desc", "description", "threshold", "topK", "top_k")}
    request: Optional[MultipartSearchRequest] = None
    try:
        request = MultipartSearchRequest.model_validate(
            {**data, "image": image, "kind": "multipart"}
        )
    except PydanticValidationError as exc:
        errors.extend(_field_errors(exc))

    if errors or request is None:
        raise ValidationError(errors)
    return request
