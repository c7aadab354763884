"""Object storage used for request-scoped staging of uploaded images."""

from .object_store import MinioObjectStore, ObjectStore, StagedObject, StagingArea

__all__ = ["MinioObjectStore", "ObjectStore", "StagedObject", "StagingArea"]
