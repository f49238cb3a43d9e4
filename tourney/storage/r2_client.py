"""Cloudflare R2 client for tournament archive storage.

Provides async S3-compatible operations for archive snapshots, the global
archive index, and uploaded tournament documents.

Unlike a best-effort cache client, every operation here raises: callers of
the archive subsystem need to tell "not found" apart from "store unavailable".

Usage:
    store = get_object_store()
    await put_json(store, "tournaments/9/archive.json", payload)
    data = await get_json(store, "tournaments/9/archive.json")
"""

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from tourney.config import get_settings
from tourney.storage.base import ObjectNotFound, ObjectStore, TransientStoreError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound", "NoSuchObject"}


def is_not_found_error(exc: Exception) -> bool:
    """True when exc means the object does not exist."""
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in NOT_FOUND_CODES:
            return True
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return status == 404
    if isinstance(exc, BotoCoreError):
        # Connection/credential failures, never a missing key
        return False
    # Mocked or wrapped errors only carry the code in their message
    return "nosuchkey" in str(exc).lower()


class R2Client:
    """Async Cloudflare R2 client using aioboto3.

    S3-compatible API for storing and retrieving archive objects.
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
        public_base_url: str = "",
    ):
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._session = None

    async def _get_client(self):
        """Get or create aioboto3 S3 client."""
        if self._session is None:
            import aioboto3

            self._session = aioboto3.Session()
        return self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def _translate(self, exc: Exception, operation: str, key: str) -> Exception:
        if is_not_found_error(exc):
            return ObjectNotFound(key, operation)
        return TransientStoreError(operation, key, str(exc))

    # ==========================================================================
    # Low-level operations
    # ==========================================================================

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        cache_max_age: Optional[int] = None,
    ) -> int:
        """Upload object to R2, overwriting any existing object at key.

        Args:
            key: Object key (e.g., "tournaments/9/archive.json")
            body: Binary content to upload
            content_type: MIME type (default: application/json)
            cache_max_age: Cache-Control max-age in seconds

        Returns:
            Stored size in bytes

        Raises:
            TransientStoreError: upload failed
        """
        extra = {}
        if cache_max_age is not None:
            extra["CacheControl"] = f"public, max-age={cache_max_age}"

        start = time.monotonic()
        try:
            async with await self._get_client() as client:
                await client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                    **extra,
                )
        except (ClientError, BotoCoreError) as e:
            duration_ms = round((time.monotonic() - start) * 1000)
            logger.error(f"R2: Failed to upload {key} ({duration_ms}ms): {e}")
            raise TransientStoreError("PUT", key, str(e)) from e

        duration_ms = round((time.monotonic() - start) * 1000)
        logger.info(f"R2: Uploaded {key} ({len(body) / 1024:.2f} KB, {duration_ms}ms)")
        return len(body)

    async def get_object(self, key: str) -> bytes:
        """Download object from R2.

        Raises:
            ObjectNotFound: key does not exist (or is not visible yet)
            TransientStoreError: any other failure
        """
        try:
            async with await self._get_client() as client:
                response = await client.get_object(
                    Bucket=self.bucket,
                    Key=key,
                )
                body = await response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            translated = self._translate(e, "GET", key)
            if isinstance(translated, ObjectNotFound):
                logger.debug(f"R2: Object not found: {key}")
            else:
                logger.error(f"R2: Failed to download {key}: {e}")
            raise translated from e

        logger.debug(f"R2: Downloaded {key} ({len(body)} bytes)")
        return body

    async def delete_object(self, key: str) -> None:
        """Delete object from R2. Deleting a missing key is not an error (S3 semantics)."""
        try:
            async with await self._get_client() as client:
                await client.delete_object(
                    Bucket=self.bucket,
                    Key=key,
                )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2: Failed to delete {key}: {e}")
            raise self._translate(e, "DELETE", key) from e
        logger.info(f"R2: Deleted {key}")

    async def object_exists(self, key: str) -> bool:
        """Check if object exists in R2.

        Raises:
            TransientStoreError: the check itself failed
        """
        try:
            async with await self._get_client() as client:
                await client.head_object(
                    Bucket=self.bucket,
                    Key=key,
                )
                return True
        except (ClientError, BotoCoreError) as e:
            if is_not_found_error(e):
                return False
            raise TransientStoreError("HEAD", key, str(e)) from e

    async def list_objects(self, prefix: str, limit: int = 1000) -> list[str]:
        """List object keys with given prefix (at most `limit`)."""
        keys: list[str] = []
        try:
            async with await self._get_client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        keys.append(obj["Key"])
                        if len(keys) >= limit:
                            return keys
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2: Failed to list {prefix}: {e}")
            raise TransientStoreError("LIST", prefix, str(e)) from e
        return keys

    def public_url(self, key: str) -> str:
        """Public URL for key, or the bare key when no public base is configured."""
        if not self.public_base_url:
            return key
        return f"{self.public_base_url}/{key}"

    async def close(self) -> None:
        """Close the client session."""
        self._session = None
        logger.debug("R2: Client closed")


# ==========================================================================
# JSON helpers (work with any ObjectStore)
# ==========================================================================


def dump_json(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False, indent=2, default=str).encode("utf-8")


async def put_json(
    store: ObjectStore,
    key: str,
    data: Any,
    cache_max_age: Optional[int] = None,
) -> int:
    """Serialize data and store it at key. Returns byte size."""
    return await store.put_object(
        key, dump_json(data), content_type="application/json", cache_max_age=cache_max_age
    )


async def get_json(store: ObjectStore, key: str) -> Any:
    """Fetch and decode a JSON object.

    Raises:
        ObjectNotFound / TransientStoreError from the store
        ValueError: body is not valid JSON
    """
    body = await store.get_object(key)
    return json.loads(body.decode("utf-8"))


async def get_json_retrying(
    store: ObjectStore,
    key: str,
    max_retries: int,
    backoff_base: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """get_json, retrying NotFound with exponential backoff (base * 2^n).

    A fresh write may not be visible yet, so NotFound is only final after
    max_retries further reads.

    Raises:
        ObjectNotFound: still absent after the retries
        TransientStoreError / ValueError: as get_json, not retried
    """
    for attempt in range(max_retries + 1):
        try:
            return await get_json(store, key)
        except ObjectNotFound:
            if attempt >= max_retries:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.debug(f"R2: {key} not visible, retrying in {delay}s ({attempt + 1}/{max_retries})")
            await sleep(delay)


async def health_check(store: ObjectStore, prefix: str = "health-check") -> dict:
    """Write/read/delete round trip against the store.

    Returns:
        {"healthy": bool, "latency_ms": int, "error": str (on failure)}
    """
    key = f"{prefix}/{int(time.time() * 1000)}.json"
    payload = {"timestamp": datetime.now(timezone.utc).isoformat(), "test": True}
    start = time.monotonic()
    try:
        await put_json(store, key, payload)
        retrieved = await get_json(store, key)
        await store.delete_object(key)
        if retrieved.get("timestamp") != payload["timestamp"]:
            raise ValueError("Data integrity check failed")
    except Exception as e:
        logger.warning(f"R2: Health check failed: {e}")
        return {"healthy": False, "latency_ms": 0, "error": str(e)}

    return {"healthy": True, "latency_ms": round((time.monotonic() - start) * 1000)}


# Global client instance (lazy initialization)
_object_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """Get the configured object store.

    Returns:
        R2Client when STORAGE_BACKEND=r2, otherwise a process-local in-memory store

    Raises:
        RuntimeError: R2 selected but not configured
    """
    global _object_store

    if _object_store is not None:
        return _object_store

    settings = get_settings()
    if settings.STORAGE_BACKEND == "r2":
        if not settings.R2_ENDPOINT_URL:
            raise RuntimeError("STORAGE_BACKEND=r2 but R2_ENDPOINT_URL not set")
        _object_store = R2Client(
            endpoint_url=settings.R2_ENDPOINT_URL,
            access_key_id=settings.R2_ACCESS_KEY_ID,
            secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            bucket=settings.R2_BUCKET,
            public_base_url=settings.R2_PUBLIC_BASE_URL,
        )
        logger.info(f"R2: Client initialized (bucket={settings.R2_BUCKET})")
    else:
        from tourney.storage.memory import InMemoryObjectStore

        _object_store = InMemoryObjectStore()
        logger.warning("Object store: using in-memory backend (data lost on exit)")

    return _object_store
