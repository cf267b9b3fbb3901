from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TYPE_CHECKING
from urllib.parse import quote, unquote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import Settings, get_settings
from app.services.errors import (
    InvalidRequestError,
    ObjectExistsError,
    ObjectNotFoundError,
    StorageOperationError,
    StorageUnavailableError,
)


if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client
else:  # pragma: no cover - type checking only
    from botocore.client import BaseClient as S3Client


logger = logging.getLogger("app.storage")

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp")
DEFAULT_CONTENT_TYPE = "image/jpeg"

_CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/pjpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
_EXTENSION_CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    url: str


@dataclass(frozen=True, slots=True)
class ObjectPayload:
    data: bytes
    content_type: str


@dataclass(frozen=True, slots=True)
class ImageUpload:
    """An image received from the admin panel, already read into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def known_extension(self) -> str | None:
        ext = extension_for_content_type(self.content_type)
        if ext:
            return ext
        _, dot, suffix = self.filename.rpartition(".")
        if dot and suffix.lower() in IMAGE_EXTENSIONS:
            return suffix.lower()
        return None

    @property
    def extension(self) -> str:
        return self.known_extension or "jpg"


def validate_image_upload(upload: ImageUpload) -> ImageUpload:
    if not upload.content_type.lower().startswith("image/"):
        raise InvalidRequestError("All files must be images", details=upload.filename or None)
    if upload.known_extension is None:
        raise InvalidRequestError("Unsupported image format", details=upload.content_type)
    if not upload.data:
        raise InvalidRequestError("Uploaded image is empty", details=upload.filename or None)
    return upload


def extension_for_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    normalized = content_type.split(";", 1)[0].strip().lower()
    return _CONTENT_TYPE_EXTENSIONS.get(normalized)


def content_type_for_key(key: str) -> str:
    _, _, ext = key.rpartition(".")
    return _EXTENSION_CONTENT_TYPES.get(ext.lower(), DEFAULT_CONTENT_TYPE)


def is_image_key(key: str) -> bool:
    _, dot, ext = key.rpartition(".")
    return bool(dot) and ext.lower() in IMAGE_EXTENSIONS


def _filter_kwargs(**kwargs: Any) -> dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


def _error_code(exc: ClientError) -> str | None:
    return exc.response.get("Error", {}).get("Code")


@lru_cache
def get_s3_client() -> S3Client:
    settings = get_settings()
    config_kwargs: dict[str, Any] = {
        "connect_timeout": settings.storage_timeout_seconds,
        "read_timeout": settings.storage_timeout_seconds,
        "retries": {"max_attempts": 2, "mode": "standard"},
    }
    if settings.s3_use_path_style:
        config_kwargs["s3"] = {"addressing_style": "path"}

    client_kwargs: dict[str, Any] = {
        "aws_access_key_id": settings.s3_access_key,
        "aws_secret_access_key": settings.s3_secret_key,
        "region_name": settings.s3_region,
        "endpoint_url": settings.s3_endpoint,
        "config": Config(**config_kwargs),
    }
    return boto3.client("s3", **_filter_kwargs(**client_kwargs))


def ensure_bucket(settings: Settings | None = None) -> str:
    bucket = (settings or get_settings()).s3_bucket
    if not bucket:
        raise StorageUnavailableError("S3 bucket not configured")
    return bucket


def public_base_url(settings: Settings, bucket: str) -> str:
    if settings.s3_public_base_url:
        return settings.s3_public_base_url
    if settings.s3_endpoint:
        return f"{settings.s3_endpoint.rstrip('/')}/{bucket}"
    region = settings.s3_region or "us-east-1"
    return f"https://{bucket}.s3.{region}.amazonaws.com"


class ObjectStore:
    """Async facade over one S3 bucket.

    Every blocking boto3 call runs in a worker thread so request handlers only
    suspend at I/O. Keys map to stable public URLs: overwriting a key keeps its
    URL, so callers that need fresh content must append a cache-busting token.
    """

    def __init__(self, client: S3Client, bucket: str, *, base_url: str) -> None:
        self._client = client
        self.bucket = bucket
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ObjectStore":
        settings = settings or get_settings()
        bucket = ensure_bucket(settings)
        return cls(get_s3_client(), bucket, base_url=public_base_url(settings, bucket))

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{quote(key, safe='/')}"

    def key_from_url(self, url: str) -> str | None:
        path = urlsplit(url)._replace(query="", fragment="").geturl()
        if path.startswith(f"{self._base_url}/"):
            key = path[len(self._base_url) + 1 :]
        else:
            # URLs minted under a previous public base: fall back to the path,
            # dropping a leading bucket segment.
            key = urlsplit(url).path.lstrip("/")
            if key.startswith(f"{self.bucket}/"):
                key = key[len(self.bucket) + 1 :]
        key = unquote(key)
        return key or None

    async def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        allow_overwrite: bool = True,
    ) -> str:
        if not allow_overwrite and await self.exists_key(key):
            raise ObjectExistsError(details=key)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or content_type_for_key(key),
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Upload failed", extra={"key": key, "error": str(exc)})
            raise StorageOperationError("Failed to upload object", details=str(exc)) from exc
        return self.public_url(key)

    async def get(self, key: str) -> ObjectPayload:
        def _read() -> ObjectPayload:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"]
            try:
                data = body.read()
            finally:
                body.close()
            return ObjectPayload(
                data=data,
                content_type=response.get("ContentType") or content_type_for_key(key),
            )

        try:
            return await asyncio.to_thread(_read)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(details=key) from exc
            logger.warning("Download failed", extra={"key": key, "error": str(exc)})
            raise StorageOperationError("Failed to download object", details=str(exc)) from exc
        except BotoCoreError as exc:
            logger.warning("Download failed", extra={"key": key, "error": str(exc)})
            raise StorageOperationError("Failed to download object", details=str(exc)) from exc

    async def delete_key(self, key: str) -> None:
        """Delete ``key``; deleting an absent key is not an error."""

        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return
            raise StorageOperationError("Failed to delete object", details=str(exc)) from exc
        except BotoCoreError as exc:
            raise StorageOperationError("Failed to delete object", details=str(exc)) from exc

    async def delete(self, url: str) -> None:
        key = self.key_from_url(url)
        if not key:
            logger.warning("Could not extract key from URL", extra={"url": url})
            return
        await self.delete_key(key)

    async def list(self, prefix: str) -> list[StoredObject]:
        def _list() -> list[StoredObject]:
            objects: list[StoredObject] = []
            kwargs: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": 1000}
            while True:
                response = self._client.list_objects_v2(**kwargs)
                for item in response.get("Contents") or []:
                    key = item.get("Key")
                    if key:
                        objects.append(StoredObject(key=key, url=self.public_url(key)))
                if not response.get("IsTruncated"):
                    return objects
                kwargs["ContinuationToken"] = response["NextContinuationToken"]

        try:
            return await asyncio.to_thread(_list)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Listing failed", extra={"prefix": prefix, "error": str(exc)})
            raise StorageOperationError("Failed to list objects", details=str(exc)) from exc

    async def exists_key(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise StorageOperationError("Failed to inspect object", details=str(exc)) from exc
        except BotoCoreError as exc:
            raise StorageOperationError("Failed to inspect object", details=str(exc)) from exc
        return True

    async def exists(self, url: str) -> bool:
        key = self.key_from_url(url)
        if not key:
            return False
        return await self.exists_key(key)

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._client.head_bucket, Bucket=self.bucket)
        except (ClientError, BotoCoreError):
            logger.exception("Storage bucket unreachable")
            return False
        return True


__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "IMAGE_EXTENSIONS",
    "ImageUpload",
    "ObjectPayload",
    "ObjectStore",
    "S3Client",
    "StoredObject",
    "content_type_for_key",
    "ensure_bucket",
    "extension_for_content_type",
    "get_s3_client",
    "is_image_key",
    "public_base_url",
    "validate_image_upload",
]
