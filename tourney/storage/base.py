"""Object store contract shared by the R2 client and the in-memory store.

All operations may be eventually consistent: a put may not be visible to an
immediately following get/list issued by another caller.
"""

from typing import Optional, Protocol


class StorageError(Exception):
    """Base error for object store operations."""

    def __init__(self, operation: str, key: str, message: str):
        self.operation = operation
        self.key = key
        super().__init__(f"Object store {operation} failed for '{key}': {message}")


class ObjectNotFound(StorageError):
    """Object absent (or not yet visible). Expected; not logged as an error."""

    def __init__(self, key: str, operation: str = "GET"):
        super().__init__(operation, key, "not found")


class TransientStoreError(StorageError):
    """Network/availability failure. Retried where a retry budget exists."""


class ObjectStore(Protocol):
    """put/get/head/delete/list over a remote blob service."""

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        cache_max_age: Optional[int] = None,
    ) -> int:
        """Store body at key, overwriting. Returns stored byte size."""
        ...

    async def get_object(self, key: str) -> bytes:
        """Return object bytes. Raises ObjectNotFound or TransientStoreError."""
        ...

    async def object_exists(self, key: str) -> bool:
        ...

    async def delete_object(self, key: str) -> None:
        ...

    async def list_objects(self, prefix: str, limit: int = 1000) -> list[str]:
        ...

    def public_url(self, key: str) -> str:
        ...
