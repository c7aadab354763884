"""
Tests for transient object staging.

The property under test: an object that was staged is deleted exactly once,
whatever happens inside the staged block, and never when staging failed.
"""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from conftest import FakeObjectStore, make_png
from docsearch.errors import ObjectStoreError
from docsearch.storage import MinioObjectStore, StagingArea
from docsearch.validation import ImageUpload


@pytest.fixture
def upload() -> ImageUpload:
    return ImageUpload(data=make_png(), content_type="image/png", filename="a.png")


class TestStagingArea:
    def test_stage_returns_resolvable_reference(self, object_store, upload):
        staging = StagingArea(object_store)
        obj = asyncio.run(staging.stage(upload))
        assert obj.key.startswith("staged/")
        assert obj.key.endswith(".png")
        assert obj.url == f"https://objects.test/{obj.key}"
        assert object_store.objects[obj.key] == upload.data

    def test_deleted_once_on_success(self, object_store, upload):
        staging = StagingArea(object_store)

        async def run():
            async with staging.staged(upload) as obj:
                assert obj.key in object_store.objects
                return obj

        obj = asyncio.run(run())
        assert object_store.deletes == [obj.key]
        assert object_store.objects == {}

    def test_deleted_once_on_error(self, object_store, upload):
        """A failure inside the block still releases the object, and the error propagates."""
        staging = StagingArea(object_store)

        async def run():
            async with staging.staged(upload):
                raise RuntimeError("search backend down")

        with pytest.raises(RuntimeError, match="search backend down"):
            asyncio.run(run())
        assert len(object_store.deletes) == 1
        assert object_store.objects == {}

    def test_deleted_on_cancellation(self, object_store, upload):
        """Cancelling the request does not cancel the cleanup."""
        staging = StagingArea(object_store)
        entered = None

        async def run():
            nonlocal entered
            entered = asyncio.Event()

            async def handler():
                async with staging.staged(upload):
                    entered.set()
                    await asyncio.sleep(60)

            task = asyncio.create_task(handler())
            await entered.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            # Let the shielded delete finish.
            while staging._pending:
                await asyncio.sleep(0.01)

        asyncio.run(run())
        assert len(object_store.deletes) == 1
        assert object_store.objects == {}

    def test_no_upload_stages_nothing(self, object_store):
        staging = StagingArea(object_store)

        async def run():
            async with staging.staged(None) as obj:
                return obj

        assert asyncio.run(run()) is None
        assert object_store.puts == []
        assert object_store.deletes == []

    def test_failed_put_is_not_unstaged(self, upload):
        store = FakeObjectStore(fail_put=True)
        staging = StagingArea(store)

        async def run():
            async with staging.staged(upload):
                pytest.fail("block must not run when staging failed")

        with pytest.raises(ObjectStoreError):
            asyncio.run(run())
        assert store.deletes == []

    def test_failed_delete_does_not_mask_result(self, upload):
        """A delete failure is logged; the block's own outcome is what the caller sees."""
        store = FakeObjectStore(fail_delete=True)
        staging = StagingArea(store)

        async def run():
            async with staging.staged(upload):
                return "hits"

        assert asyncio.run(run()) == "hits"
        assert len(store.deletes) == 1

    def test_failed_delete_does_not_mask_error(self, upload):
        store = FakeObjectStore(fail_delete=True)
        staging = StagingArea(store)

        async def run():
            async with staging.staged(upload):
                raise ValueError("primary")

        with pytest.raises(ValueError, match="primary"):
            asyncio.run(run())


class TestMinioObjectStore:
    def test_put_creates_bucket_once(self):
        client = MagicMock()
        client.bucket_exists.return_value = False
        store = MinioObjectStore(client, "staged-images")

        store.put("staged/a.png", b"abc", "image/png")
        store.put("staged/b.png", b"abcd", "image/png")

        client.make_bucket.assert_called_once_with(bucket_name="staged-images")
        assert client.put_object.call_count == 2
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["object_name"] == "staged/b.png"
        assert kwargs["length"] == 4
        assert kwargs["content_type"] == "image/png"

    def test_concurrent_bucket_creation_is_tolerated(self):
        client = MagicMock()
        client.bucket_exists.return_value = False
        client.make_bucket.side_effect = S3Error(
            code="BucketAlreadyOwnedByYou",
            message="exists",
            resource="staged-images",
            request_id="req",
            host_id="host",
            response=MagicMock(),
        )
        store = MinioObjectStore(client, "staged-images")

        store.put("staged/a.png", b"abc", "image/png")
        client.put_object.assert_called_once()

    def test_url_and_delete(self):
        client = MagicMock()
        client.presigned_get_object.return_value = "https://minio.test/staged/a.png?sig"
        store = MinioObjectStore(client, "bucket", url_ttl=timedelta(seconds=30))

        assert store.url_for("staged/a.png") == "https://minio.test/staged/a.png?sig"
        client.presigned_get_object.assert_called_once_with(
            bucket_name="bucket", object_name="staged/a.png", expires=timedelta(seconds=30)
        )
        store.delete("staged/a.png")
        client.remove_object.assert_called_once_with(bucket_name="bucket", object_name="staged/a.png")
