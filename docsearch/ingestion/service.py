from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

from ..errors import UpstreamDependencyError, ValidationError
from ..validation import DocumentDescriptor, validate_descriptor
from .gateway import EmbeddingGateway
from .images import probe_image

logger = logging.getLogger(__name__)

T = TypeVar("T")

GENERIC_ITEM_ERROR = "Internal error while processing document."


@dataclass
class IngestionResult:
    url: Optional[str]
    desc: Optional[str]
    metadata: Optional[Dict[str, Any]]
    success: bool
    errors: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "desc": self.desc,
            "metadata": self.metadata,
            "success": self.success,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class _Outcome:
    descriptor: Optional[DocumentDescriptor] = None
    error: Optional[str] = None


def _echo(item: Any) -> Dict[str, Any]:
    """What the caller sent, as far as it can be read back."""
    if not isinstance(item, Mapping):
        return {"url": None, "desc": None, "metadata": None}
    desc = item.get("desc", item.get("description"))
    metadata = item.get("metadata")
    return {
        "url": item.get("url") if isinstance(item.get("url"), str) else None,
        "desc": desc if isinstance(desc, str) else None,
        "metadata": metadata if isinstance(metadata, dict) else None,
    }


class IngestionService:
    """Batch ingestion with per-item isolation.

    Every item is validated on its own (schema, then a remote probe for URLs);
    only accepted items reach the gateway. A failure anywhere becomes that
    item's result and never affects its siblings. Results are index-aligned
    with the input and returned only once every item has settled.
    """

    def __init__(self, gateway: EmbeddingGateway, *, concurrency: int = 8) -> None:
        self.gateway = gateway
        self.concurrency = max(1, concurrency)

    async def _gather(self, aws: Iterable[Awaitable[T]]) -> List[T]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(aw: Awaitable[T]) -> T:
            async with semaphore:
                return await aw

        return list(await asyncio.gather(*(bounded(aw) for aw in aws)))

    async def _validate(self, item: Any) -> _Outcome:
        try:
            descriptor = validate_descriptor(item)
            if descriptor.url:
                await probe_image(
                    self.gateway.http,
                    descriptor.url,
                    allowed_types=self.gateway.allowed_types,
                    max_bytes=self.gateway.max_bytes,
                )
        except ValidationError as e:
            logger.info("Rejected document: %s", e.message)
            return _Outcome(error=e.message)
        except UpstreamDependencyError as e:
            logger.warning("Could not validate document: %s", e.message)
            return _Outcome(error=e.message)
        except Exception:
            logger.exception("Unexpected error validating document")
            return _Outcome(error=GENERIC_ITEM_ERROR)
        return _Outcome(descriptor=descriptor)

    async def _store(self, descriptor: DocumentDescriptor) -> Optional[str]:
        """Embed and persist one descriptor; returns an error message on failure."""
        try:
            await self.gateway.embed_and_store(descriptor)
        except ValidationError as e:
            logger.info("Rejected document %s: %s", descriptor.url, e.message)
            return e.message
        except UpstreamDependencyError as e:
            logger.warning(
                "Failed to ingest document %s: %s", descriptor.url, e.message, exc_info=True
            )
            return e.message
        except Exception:
            logger.exception("Unexpected error ingesting document %s", descriptor.url)
            return GENERIC_ITEM_ERROR
        return None

    async def ingest(self, items: Sequence[Any]) -> List[IngestionResult]:
        outcomes = await self._gather(self._validate(item) for item in items)

        accepted = [i for i, o in enumerate(outcomes) if o.descriptor is not None]
        store_errors = await self._gather(self._store(outcomes[i].descriptor) for i in accepted)
        errors: List[Optional[str]] = [o.error for o in outcomes]
        for i, err in zip(accepted, store_errors):
            errors[i] = err

        results = [
            IngestionResult(**_echo(item), success=err is None, errors=err)
            for item, err in zip(items, errors)
        ]
        logger.info(
            "Ingested batch of %d: %d succeeded, %d failed",
            len(results),
            sum(r.success for r in results),
            sum(not r.success for r in results),
        )
        return results
