from __future__ import annotations

import base64
import copy
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Any

from botocore.exceptions import ClientError

from app.core.config import get_settings
from app.core.limiter import TEST_RATE_LIMIT_HEADER
from app.services.errors import MetadataStoreError
from app.services.metadata_store import ROOM_METADATA_KEY, ROOM_ORDER_KEY
from app.services.room_images import RoomImageRepository
from app.services.room_locks import RoomLocks
from app.services.storage import ObjectStore

BUCKET = "test-bucket"
BASE_URL = "https://cdn.test"

__all__ = [
    "BASE_URL",
    "BUCKET",
    "FakeMetadataStore",
    "FakeS3Client",
    "TEST_RATE_LIMIT_HEADER",
    "admin_headers",
    "fresh_locks",
    "make_repository",
    "room_bytes",
    "room_files",
    "seed_room",
    "seed_rooms",
]


def _client_error(code: str, operation: str, status: int) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class _Body:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self.closed = False

    def read(self) -> bytes:
        return self._data

    def close(self) -> None:
        self.closed = True


@dataclass
class _Failure:
    operation: str
    key: str | None
    contains: str | None
    remaining: int | None

    def matches(self, operation: str, key: str | None) -> bool:
        if operation != self.operation:
            return False
        if self.key is not None and key != self.key:
            return False
        if self.contains is not None and (key is None or self.contains not in key):
            return False
        return self.remaining is None or self.remaining > 0


class FakeS3Client:
    """In-memory stand-in for the handful of boto3 S3 calls the app makes."""

    def __init__(self, *, page_size: int | None = None) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.page_size = page_size
        self._failures: list[_Failure] = []
        self._lock = Lock()

    def fail_on(
        self,
        operation: str,
        *,
        key: str | None = None,
        contains: str | None = None,
        times: int | None = 1,
    ) -> None:
        """Make the next ``times`` matching calls raise; ``None`` means always."""

        self._failures.append(_Failure(operation, key, contains, times))

    def _record(self, operation: str, key: str | None) -> None:
        with self._lock:
            self.calls.append((operation, key))
            for failure in self._failures:
                if failure.matches(operation, key):
                    if failure.remaining is not None:
                        failure.remaining -= 1
                    raise _client_error("InternalError", operation, 500)

    def operations(self, *names: str) -> list[tuple[str, str | None]]:
        return [call for call in self.calls if call[0] in names]

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict[str, Any]:
        self._record("put_object", Key)
        self.objects[Key] = (bytes(Body), ContentType)
        return {"ETag": f'"{len(self.objects)}"'}

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        self._record("get_object", Key)
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject", 404)
        data, content_type = self.objects[Key]
        return {"Body": _Body(data), "ContentType": content_type}

    def delete_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        self._record("delete_object", Key)
        self.objects.pop(Key, None)
        return {}

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        self._record("head_object", Key)
        if Key not in self.objects:
            raise _client_error("404", "HeadObject", 404)
        data, content_type = self.objects[Key]
        return {"ContentLength": len(data), "ContentType": content_type}

    def head_bucket(self, *, Bucket: str) -> dict[str, Any]:
        self._record("head_bucket", None)
        return {}

    def list_objects_v2(
        self,
        *,
        Bucket: str,
        Prefix: str,
        MaxKeys: int = 1000,
        ContinuationToken: str | None = None,
    ) -> dict[str, Any]:
        self._record("list_objects_v2", Prefix)
        keys = sorted(key for key in self.objects if key.startswith(Prefix))
        start = int(base64.b64decode(ContinuationToken).decode()) if ContinuationToken else 0
        size = self.page_size or MaxKeys
        page = keys[start : start + size]
        response: dict[str, Any] = {
            "Contents": [{"Key": key, "Size": len(self.objects[key][0])} for key in page],
            "IsTruncated": start + size < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = base64.b64encode(str(start + size).encode()).decode()
        return response


class FakeMetadataStore:
    """Dict-backed metadata store; ``fail`` makes an operation raise."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.sets: dict[str, set[str]] = defaultdict(set)
        self.failing: set[str] = set()
        self.healthy = True

    def fail(self, *operations: str) -> None:
        self.failing.update(operations)

    def _check(self, operation: str) -> None:
        if operation in self.failing:
            raise MetadataStoreError(details=f"{operation} unavailable")

    async def get(self, key: str) -> Any | None:
        self._check("get")
        return copy.deepcopy(self.values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._check("set")
        self.values[key] = copy.deepcopy(value)

    async def add_to_set(self, key: str, member: str) -> None:
        self._check("add_to_set")
        self.sets[key].add(member)

    async def members_of(self, key: str) -> set[str]:
        self._check("members_of")
        return set(self.sets.get(key, set()))

    async def ping(self) -> bool:
        return self.healthy


def make_repository(
    client: FakeS3Client | None = None,
    store: FakeMetadataStore | None = None,
) -> RoomImageRepository:
    objects = ObjectStore(client or FakeS3Client(), BUCKET, base_url=BASE_URL)
    return RoomImageRepository(
        objects,
        store or FakeMetadataStore(),
        settle_timeout=0,
        settle_initial_delay=0,
        settle_max_delay=0,
    )


def fresh_locks() -> RoomLocks:
    return RoomLocks()


def seed_room(client: FakeS3Client, room_id: str, files: dict[str, bytes]) -> None:
    for filename, data in files.items():
        ext = filename.rpartition(".")[2].lower()
        content_type = "image/png" if ext == "png" else "image/jpeg"
        client.objects[f"rooms/{room_id}/{filename}"] = (data, content_type)


def room_files(client: FakeS3Client, room_id: str) -> list[str]:
    prefix = f"rooms/{room_id}/"
    return sorted(key[len(prefix) :] for key in client.objects if key.startswith(prefix))


def room_bytes(client: FakeS3Client, room_id: str, filename: str) -> bytes:
    return client.objects[f"rooms/{room_id}/{filename}"][0]


def seed_rooms(
    store: FakeMetadataStore,
    rooms: dict[str, dict[str, Any]],
    order: list[str] | None = None,
) -> None:
    store.values[ROOM_METADATA_KEY] = copy.deepcopy(rooms)
    if order is not None:
        store.values[ROOM_ORDER_KEY] = list(order)


def admin_headers() -> dict[str, str]:
    settings = get_settings()
    token = base64.b64encode(f"{settings.admin_user}:{settings.admin_pass}".encode()).decode()
    return {"Authorization": f"Basic {token}"}
