"""
Object storage backends used to stage audio chunks between acquisition
and transcription.

Both backends expose the same async interface (put/get/list/delete/
delete_prefix) over string keys. Keys for one video share the prefix
"audio_{video_id}/".
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional

import boto3

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Interface for keyed object storage."""

    async def put(self, key: str, source: Path) -> str:
        raise NotImplementedError

    async def get(self, key: str, destination: Path) -> Path:
        raise NotImplementedError

    async def list(self, prefix: str) -> List[str]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object whose key starts with prefix. Returns the count."""
        keys = await self.list(prefix)
        for key in keys:
            await self.delete(key)
        return len(keys)


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage rooted at a staging directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, source: Path) -> str:
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, target)
        return key

    async def get(self, key: str, destination: Path) -> Path:
        source = self._path(key)
        if not source.exists():
            raise FileNotFoundError(f"No staged object: {key}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, destination)
        return destination

    async def list(self, prefix: str) -> List[str]:
        if not self.root.exists():
            return []
        keys = (
            path.relative_to(self.root).as_posix()
            for path in self.root.rglob("*")
            if path.is_file()
        )
        return sorted(key for key in keys if key.startswith(prefix))

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def delete_prefix(self, prefix: str) -> int:
        count = await super().delete_prefix(prefix)
        # Drop directories left empty by the deletion
        if self.root.exists():
            for directory in sorted(self.root.rglob("*"), reverse=True):
                if directory.is_dir() and not any(directory.iterdir()):
                    directory.rmdir()
        return count


class S3ObjectStorage(ObjectStorage):
    """S3 (or S3-compatible) storage using boto3 in worker threads."""

    def __init__(self,
                 bucket: str,
                 region: Optional[str] = None,
                 endpoint_url: Optional[str] = None,
                 aws_access_key_id: Optional[str] = None,
                 aws_secret_access_key: Optional[str] = None,
                 client=None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
        )

    async def put(self, key: str, source: Path) -> str:
        await asyncio.to_thread(self.client.upload_file, str(source), self.bucket, key)
        logger.debug(f"Uploaded {key} to s3://{self.bucket}")
        return key

    async def get(self, key: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self.client.download_file, self.bucket, key, str(destination))
        return destination

    def _list_sync(self, prefix: str) -> List[str]:
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return sorted(keys)

    async def list(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)

    async def delete_prefix(self, prefix: str) -> int:
        keys = await self.list(prefix)
        # delete_objects accepts at most 1000 keys per request
        for start in range(0, len(keys), 1000):
            batch = [{"Key": key} for key in keys[start:start + 1000]]
            await asyncio.to_thread(
                self.client.delete_objects,
                Bucket=self.bucket,
                Delete={"Objects": batch, "Quiet": True},
            )
        if keys:
            logger.debug(f"Deleted {len(keys)} objects under s3://{self.bucket}/{prefix}")
        return len(keys)


def create_object_storage(settings) -> ObjectStorage:
    """Build the backend selected by settings.storage_backend."""
    if settings.storage_backend.value == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        return S3ObjectStorage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
    return LocalObjectStorage(settings.staging_dir)
