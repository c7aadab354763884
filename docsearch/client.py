"""Python client for the docsearch HTTP API.

Every call returns an ``ApiResponse`` instead of raising: HTTP errors are
reported through ``status`` and ``error``, and transport failures (DNS,
refused connection, timeout) come back with ``status == 0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import httpx

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_ERROR = "Unknown client error occurred"


@dataclass
class ApiResponse:
    ok: bool
    status: int
    data: Any = None
    error: Optional[str] = None
    issues: List[Dict[str, Any]] = field(default_factory=list)


def _error_response(response: httpx.Response) -> ApiResponse:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and "error" in body:
        return ApiResponse(
            ok=False,
            status=response.status_code,
            error=str(body["error"]),
            issues=list(body.get("issues") or []),
        )
    return ApiResponse(
        ok=False,
        status=response.status_code,
        error=response.text or response.reason_phrase,
    )


class Client:
    """Synchronous docsearch client.

    Example::

        client = Client(api_key="...", base_url="http://localhost:8000")
        res = client.search(desc="a red bicycle", top_k=5)
        if res.ok:
            for hit in res.data["hits"]:
                ...
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"x-api-key": api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.debug("%s %s failed before a response: %s", method, path, e)
            return ApiResponse(ok=False, status=0, error=UNKNOWN_CLIENT_ERROR)
        if response.is_success:
            return ApiResponse(ok=True, status=response.status_code, data=response.json())
        return _error_response(response)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def get_documents(
        self,
        limit: Union[int, str, None] = None,
        offset: Union[int, str, None] = None,
    ) -> ApiResponse:
        params = {k: str(v) for k, v in (("limit", limit), ("offset", offset)) if v is not None}
        return self._request("GET", "/document", params=params)

    def get_document_by_id(self, doc_id: Union[int, str]) -> ApiResponse:
        return self._request("GET", f"/document/{doc_id}")

    def delete_document_by_id(self, doc_id: Union[int, str]) -> ApiResponse:
        return self._request("DELETE", f"/document/{doc_id}")

    def create_documents(self, documents: Sequence[Mapping[str, Any]]) -> ApiResponse:
        """Submit descriptors ``{url?, desc?, metadata?}``; data is one result per item."""
        return self._request("POST", "/document", json={"documents": list(documents)})

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    def search(
        self,
        url: Optional[str] = None,
        desc: Optional[str] = None,
        image: Optional[bytes] = None,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        *,
        image_type: str = "image/jpeg",
        filename: str = "image",
    ) -> ApiResponse:
        """Search by image URL, uploaded image bytes, text, or a combination.

        Passing ``image`` sends a multipart request; ``url`` is ignored then.
        """
        params: Dict[str, Any] = {}
        if desc is not None:
            params["desc"] = desc
        if threshold is not None:
            params["threshold"] = threshold
        if top_k is not None:
            params["topK"] = top_k

        if image is not None:
            return self._request(
                "POST",
                "/search",
                data={k: str(v) for k, v in params.items()},
                files={"image": (filename, image, image_type)},
            )
        if url is not None:
            params["url"] = url
        return self._request("POST", "/search", json=params)
