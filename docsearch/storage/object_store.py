"""Transient object staging.

Uploaded search images are put into object storage so the search backend can
fetch them by URL. A staged object lives exactly as long as the request that
created it: :meth:`StagingArea.staged` deletes it on every exit path,
including errors and cancellation.
"""

from __future__ import annotations

import asyncio
import io
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Optional, Protocol, Set, runtime_checkable

from minio import Minio
from minio.error import S3Error

from ..config import Settings
from ..errors import ObjectStoreError
from ..validation import ImageUpload

logger = logging.getLogger(__name__)

_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png"}


@dataclass(frozen=True)
class StagedObject:
    key: str
    url: str


@runtime_checkable
class ObjectStore(Protocol):
    """Minimal blob API used for staging."""

    def put(self, key: str, data: bytes, content_type: str) -> None: ...

    def url_for(self, key: str) -> str: ...

    def delete(self, key: str) -> None: ...


class MinioObjectStore:
    """ObjectStore backed by a MinIO / S3-compatible bucket."""

    def __init__(
        self,
        client: Minio,
        bucket: str,
        *,
        url_ttl: timedelta = timedelta(minutes=10),
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.url_ttl = url_ttl
        self._bucket_ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "MinioObjectStore":
        client = Minio(
            endpoint=settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )
        return cls(
            client,
            settings.minio_bucket,
            url_ttl=timedelta(seconds=settings.staged_url_ttl),
        )

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(bucket_name=self.bucket):
            try:
                self.client.make_bucket(bucket_name=self.bucket)
                logger.info("Created staging bucket '%s'.", self.bucket)
            except S3Error as e:
                # Another worker created it first.
                if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                    raise
        self._bucket_ready = True

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self.client.put_object(
            bucket_name=self.bucket,
            object_name=key,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def url_for(self, key: str) -> str:
        return self.client.presigned_get_object(
            bucket_name=self.bucket, object_name=key, expires=self.url_ttl
        )

    def delete(self, key: str) -> None:
        self.client.remove_object(bucket_name=self.bucket, object_name=key)


class StagingArea:
    """Stages request-scoped binaries in an ObjectStore."""

    def __init__(self, store: ObjectStore, *, prefix: str = "staged/") -> None:
        self.store = store
        self.prefix = prefix
        self._pending: Set["asyncio.Task[None]"] = set()

    def _new_key(self, content_type: str) -> str:
        ext = _EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "bin")
        return f"{self.prefix}{uuid.uuid4()}.{ext}"

    async def stage(self, upload: ImageUpload) -> StagedObject:
        key = self._new_key(upload.content_type)
        try:
            await asyncio.to_thread(self.store.put, key, upload.data, upload.content_type)
        except Exception as e:
            raise ObjectStoreError("Failed to stage uploaded image") from e
        try:
            url = await asyncio.to_thread(self.store.url_for, key)
        except Exception as e:
            await self._release(key)
            raise ObjectStoreError("Failed to stage uploaded image") from e
        logger.debug("Staged object %s (%d bytes).", key, upload.size)
        return StagedObject(key=key, url=url)

    async def unstage(self, key: str) -> None:
        await asyncio.to_thread(self.store.delete, key)
        logger.debug("Deleted staged object %s.", key)

    async def _release(self, key: str) -> None:
        # Shielded so a cancelled request still deletes its object; a failed
        # delete is logged and never replaces the request's own outcome.
        task = asyncio.ensure_future(self.unstage(key))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_log_release_failure(key))
            raise
        except Exception:
            logger.warning("Failed to delete staged object %s.", key, exc_info=True)

    @asynccontextmanager
    async def staged(self, upload: Optional[ImageUpload]) -> AsyncIterator[Optional[StagedObject]]:
        """Stage ``upload`` for the duration of the block; yields None when there is none."""
        if upload is None:
            yield None
            return

        obj = await self.stage(upload)
        try:
            yield obj
        finally:
            await self._release(obj.key)


def _log_release_failure(key: str):
    def _callback(task: "asyncio.Future[None]") -> None:
        if task.cancelled():
            logger.warning("Deletion of staged object %s was cancelled.", key)
        elif task.exception() is not None:
            logger.warning(
                "Failed to delete staged object %s.", key, exc_info=task.exception()
            )

    return _callback
