"""
S3 remote store for DBGuard.

Ships snapshots to an S3-compatible bucket (AWS, MinIO, R2) under one
folder prefix:

    s3://<bucket>/<prefix>/database-backup-<date>-<time>.db

The store is a service object: it is built once at startup from
RemoteConfig, holds the credentials, opens its aiobotocore client on first
use and keeps it for the process lifetime. Tests pass a fake session.

Invariants:
    - No network I/O happens before the first operation
    - The bucket is checked (HEAD) and created if missing at most once per
      process, then cached
    - Only keys under the configured prefix are ever read or deleted
    - Downloads land in a temporary sibling and are renamed into place

How to change safely:
    - Keep object keys stable; operators browse them directly
    - Test against MinIO (S3_ENDPOINT) before touching key layout
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import RemoteConfig
from ..errors import RemoteUnavailableError
from .base import SNAPSHOT_CONTENT_TYPE, RemoteEntry

logger = logging.getLogger(__name__)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


@asynccontextmanager
async def _remote_errors(operation: str) -> AsyncIterator[None]:
    """Translate botocore failures into RemoteUnavailableError."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        raise RemoteUnavailableError(f"S3 {operation} failed: {e}") from e


class S3RemoteStore:
    """RemoteStore backed by S3 via aiobotocore.

    Attributes:
        config: Remote configuration (bucket, prefix, credentials)

    Example:
        >>> store = S3RemoteStore(RemoteConfig(bucket="acme-backups", ...))
        >>> key = await store.put(Path("backups/db.db"), "db.db")
        >>> await store.close()
    """

    def __init__(self, config: RemoteConfig, session: Any | None = None) -> None:
        """Initialize the store.

        Args:
            config: Remote configuration
            session: aiobotocore session (defaults to a new one on first use)
        """
        self.config = config
        self._session = session
        self._s3_ctx = None
        self._s3_client = None
        self._container: str | None = None
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return self.config.has_credentials

    @property
    def prefix(self) -> str:
        return f"{self.config.prefix}/" if self.config.prefix else ""

    async def _init_s3_client(self) -> None:
        """Initialize S3 client."""
        if self._session is None:
            self._session = get_session()

        client_kwargs = {
            "region_name": self.config.region,
        }

        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        if self.config.access_key_id and not self.config.use_default_credentials:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        self._s3_ctx = self._session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()

    async def close(self) -> None:
        """Close S3 client."""
        if self._s3_client:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_client = None
            self._s3_ctx = None

    async def _client(self) -> Any:
        if self._s3_client is None:
            async with self._lock:
                if self._s3_client is None:
                    async with _remote_errors("connect"):
                        await self._init_s3_client()
        return self._s3_client

    async def ensure_container(self) -> str:
        """Locate or create the bucket; return the folder prefix."""
        if self._container is not None:
            return self._container

        client = await self._client()
        async with self._lock:
            if self._container is None:
                await self._ensure_bucket(client)
                self._container = self.prefix
                logger.info(
                    "Remote snapshot container ready",
                    extra={"bucket": self.config.bucket, "prefix": self.config.prefix},
                )
        return self._container

    async def _ensure_bucket(self, client: Any) -> None:
        bucket = self.config.bucket
        try:
            await client.head_bucket(Bucket=bucket)
            return
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in _MISSING_BUCKET_CODES:
                raise RemoteUnavailableError(f"S3 bucket {bucket} not accessible: {e}") from e
        except BotoCoreError as e:
            raise RemoteUnavailableError(f"S3 bucket {bucket} not reachable: {e}") from e

        create_kwargs: dict[str, Any] = {"Bucket": bucket}
        if self.config.region != "us-east-1":
            create_kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self.config.region
            }
        async with _remote_errors("create_bucket"):
            await client.create_bucket(**create_kwargs)
        logger.info("Created remote bucket", extra={"bucket": bucket})

    def _check_key(self, remote_id: str) -> None:
        if not remote_id.startswith(self.prefix) or remote_id == self.prefix:
            raise RemoteUnavailableError(f"Object {remote_id!r} is outside the backup folder")

    async def put(self, path: Path, name: str) -> str:
        """Upload a snapshot file; return its object key."""
        prefix = await self.ensure_container()
        client = await self._client()
        key = f"{prefix}{name}"

        with open(path, "rb") as f:
            body = f.read()

        async with _remote_errors("put_object"):
            await client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=body,
                ContentType=SNAPSHOT_CONTENT_TYPE,
            )

        logger.info(
            "Uploaded snapshot",
            extra={"bucket": self.config.bucket, "s3_key": key, "size_bytes": len(body)},
        )
        return key

    async def list(self) -> list[RemoteEntry]:
        """List snapshots under the prefix, newest first."""
        prefix = await self.ensure_container()
        client = await self._client()

        entries = []
        async with _remote_errors("list_objects_v2"):
            paginator = client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.config.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    name = key[len(prefix):]
                    if not name or "/" in name:
                        continue
                    modified = obj.get("LastModified")
                    entries.append(
                        RemoteEntry(
                            id=key,
                            name=name,
                            size=obj.get("Size", 0),
                            # S3 keeps no separate creation time; objects are immutable
                            created_time=modified,
                            modified_time=modified,
                        )
                    )

        return sorted(
            entries,
            key=lambda e: (e.modified_time is not None, e.modified_time, e.name),
            reverse=True,
        )

    async def get(self, remote_id: str, dest_path: Path) -> None:
        """Download an object to dest_path."""
        self._check_key(remote_id)
        await self.ensure_container()
        client = await self._client()

        async with _remote_errors("get_object"):
            response = await client.get_object(Bucket=self.config.bucket, Key=remote_id)
            content = await response["Body"].read()

        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = dest_path.with_name(f".{dest_path.name}.part")
        try:
            with open(tmp_path, "wb") as f:
                f.write(content)
            os.replace(tmp_path, dest_path)
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info(
            "Downloaded snapshot",
            extra={"s3_key": remote_id, "dest": str(dest_path), "size_bytes": len(content)},
        )

    async def delete(self, remote_id: str) -> None:
        """Delete an object under the prefix."""
        self._check_key(remote_id)
        await self.ensure_container()
        client = await self._client()

        async with _remote_errors("delete_object"):
            await client.delete_object(Bucket=self.config.bucket, Key=remote_id)

        logger.info("Deleted remote snapshot", extra={"s3_key": remote_id})
