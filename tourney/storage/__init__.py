"""Object storage - R2/S3-compatible client and in-memory backend."""

from tourney.storage.base import ObjectNotFound, ObjectStore, StorageError, TransientStoreError
from tourney.storage.memory import InMemoryObjectStore
from tourney.storage.r2_client import (
    R2Client,
    get_json,
    get_object_store,
    health_check,
    put_json,
)

__all__ = [
    "InMemoryObjectStore",
    "ObjectNotFound",
    "ObjectStore",
    "R2Client",
    "StorageError",
    "TransientStoreError",
    "get_json",
    "get_object_store",
    "health_check",
    "put_json",
]
