"""
In-memory object store for tests and local development.

Invariants:
    - All data is lost on process exit
    - Same error contract as R2Client (ObjectNotFound / TransientStoreError)
    - Optional lagged visibility: a freshly written key stays invisible to
      the next N reads, mimicking an eventually consistent global index
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from tourney.storage.base import ObjectNotFound, TransientStoreError

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    body: bytes
    content_type: str
    cache_max_age: Optional[int] = None
    hidden_reads: int = 0  # Reads that still report NotFound


@dataclass
class InMemoryObjectStore:
    """Dict-backed implementation of the ObjectStore protocol.

    Attributes:
        visibility_lag_reads: Number of get calls for which a newly created
            key keeps reporting NotFound
        fail_operations: Operation names ("PUT", "GET", ...) that raise
            TransientStoreError, for failure injection
        yield_between_ops: Await one loop iteration per call so concurrent
            coroutines interleave like real network I/O
    """

    visibility_lag_reads: int = 0
    fail_operations: set = field(default_factory=set)
    yield_between_ops: bool = True
    objects: dict = field(default_factory=dict)
    put_count: int = 0

    async def _tick(self, operation: str, key: str) -> None:
        if self.yield_between_ops:
            await asyncio.sleep(0)
        if operation in self.fail_operations:
            raise TransientStoreError(operation, key, "injected failure")

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        cache_max_age: Optional[int] = None,
    ) -> int:
        await self._tick("PUT", key)
        hidden = self.visibility_lag_reads if key not in self.objects else 0
        self.objects[key] = StoredObject(body, content_type, cache_max_age, hidden)
        self.put_count += 1
        return len(body)

    async def get_object(self, key: str) -> bytes:
        await self._tick("GET", key)
        stored = self.objects.get(key)
        if stored is None:
            raise ObjectNotFound(key)
        if stored.hidden_reads > 0:
            stored.hidden_reads -= 1
            raise ObjectNotFound(key)
        return stored.body

    async def object_exists(self, key: str) -> bool:
        await self._tick("HEAD", key)
        return key in self.objects

    async def delete_object(self, key: str) -> None:
        await self._tick("DELETE", key)
        self.objects.pop(key, None)

    async def list_objects(self, prefix: str, limit: int = 1000) -> list[str]:
        await self._tick("LIST", prefix)
        return sorted(k for k in self.objects if k.startswith(prefix))[:limit]

    def public_url(self, key: str) -> str:
        return key

    async def close(self) -> None:
        self.objects.clear()
