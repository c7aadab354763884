import base64
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from ..config import Settings, get_settings
from ..errors import EmbeddingError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingBackend(Protocol):
    """image and/or text -> fixed-length vector."""

    dim: int

    async def embed(
        self, *, image: Optional[bytes] = None, text: Optional[str] = None
    ) -> List[float]: ...


class Embedder:
    """Multimodal embedding client for an HTTP model endpoint.

    The endpoint receives ``{"inputImage": <base64>, "inputText": <str>}`` (either
    key may be omitted) and answers ``{"embedding": [float, ...]}``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        dim: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.url = url or settings.embedding_url
        self.dim = int(dim or settings.embedding_dim)
        self._api_key = api_key if api_key is not None else settings.embedding_api_key
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.embedding_timeout
        )
        logger.info(
            "Initializing embeddings endpoint=%s dim=%s", self.url, self.dim
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def build_payload(image: Optional[bytes], text: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if image:
            payload["inputImage"] = base64.b64encode(image).decode("ascii")
        if text:
            payload["inputText"] = text
        return payload

    def _check_dim(self, vec: List[float]) -> None:
        if len(vec) != self.dim:
            logger.warning(
                "Embedding dimension mismatch detected: expected=%s, got=%s.",
                self.dim,
                len(vec),
            )
            raise EmbeddingError("Embedding backend returned a vector of unexpected size")

    async def embed(
        self, *, image: Optional[bytes] = None, text: Optional[str] = None
    ) -> List[float]:
        payload = self.build_payload(image, text)
        if not payload:
            raise ValueError("Nothing to embed: provide an image and/or text")

        try:
            response = await self._client.post(self.url, json=payload, headers=self._headers())
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingError("Error calling the embedding backend") from e

        vec = body.get("embedding") if isinstance(body, dict) else None
        if not isinstance(vec, list) or not vec:
            raise EmbeddingError("Embedding backend returned no embedding")
        try:
            vec = [float(v) for v in vec]
        except (TypeError, ValueError) as e:
            raise EmbeddingError("Embedding backend returned a malformed embedding") from e
        self._check_dim(vec)
        return vec

    async def aclose(self) -> None:
        await self._client.aclose()
