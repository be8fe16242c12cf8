"""
Storage abstraction for S3-compatible object storage and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from comic_cms.errors import StoreError

logger = logging.getLogger(__name__)

STORAGE_PREFIX_SEPARATOR = "/"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageClient(Protocol):
    """Defines the operations the comic CMS needs from object storage."""

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def get_object(self, path: str) -> "StoredObject":
        ...


@dataclass
class StoredObject:
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage/comics"
    stored_objects: dict = None
    content_types: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.content_types is None:
            self.content_types = {}

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        if path in self.stored_objects:
            raise StoreError(f"The resource already exists: {path}")
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def get_object(self, path: str) -> StoredObject:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return StoredObject(
            data=stored,
            content_type=self.content_types.get(path, DEFAULT_CONTENT_TYPE),
        )

    def reset(self) -> None:
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client. Objects are written publicly readable so
    that page image URLs can be embedded directly in the reader.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        # Virtual-hosted style addressing works for AWS and most S3 clones.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload of %s to bucket %s failed: %s", path, self.bucket, e)
            raise StoreError(str(e)) from e

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        endpoint = (self.endpoint or f"https://s3.{self.region}.amazonaws.com").rstrip("/")
        scheme, _, host = endpoint.partition("://")
        return f"{scheme}://{self.bucket}.{host}/{path}"

    def get_object(self, path: str) -> StoredObject:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=path)
            data = response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(path) from e
            logger.error("Download of %s from bucket %s failed: %s", path, self.bucket, e)
            raise StoreError(str(e)) from e
        except BotoCoreError as e:
            logger.error("Download of %s from bucket %s failed: %s", path, self.bucket, e)
            raise StoreError(str(e)) from e
        return StoredObject(
            data=data,
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
        )


def comic_object_path(comic_id: str, object_name: str) -> str:
    """Objects for a comic are grouped under a per-comic prefix."""
    return f"{comic_id}{STORAGE_PREFIX_SEPARATOR}{object_name}"
