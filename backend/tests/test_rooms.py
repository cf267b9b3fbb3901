import asyncio

import pytest

from app.schemas.room import RoomFields, normalize_size
from app.services.errors import InvalidRequestError, RoomNotFoundError, StorageOperationError
from app.services.metadata_store import (
    CMS_CONFIG_KEY,
    DELETED_ROOMS_KEY,
    ROOM_METADATA_KEY,
    ROOM_ORDER_KEY,
)
from app.services.rooms import RoomCatalogue
from app.services.storage import ImageUpload

from tests.utils import (
    FakeMetadataStore,
    FakeS3Client,
    fresh_locks,
    make_repository,
    room_bytes,
    room_files,
    seed_room,
    seed_rooms,
)


def _catalogue(client: FakeS3Client, store: FakeMetadataStore) -> RoomCatalogue:
    return RoomCatalogue(make_repository(client, store), locks=fresh_locks())


def _fields(**overrides) -> RoomFields:
    data = {
        "name": "Sakura Room",
        "type": "Japanese Style",
        "description": "Tatami room near Ueno park.",
        "bedInfo": "2 futons",
        "size": "18",
        "address": "1-2-3 Ueno, Taito",
        "mapUrl": "https://maps.example/ueno",
    }
    data.update(overrides)
    return RoomFields.model_validate(data)


def _jpeg(name: str = "photo.jpg", data: bytes = b"jpeg") -> ImageUpload:
    return ImageUpload(filename=name, content_type="image/jpeg", data=data)


def test_room_fields_defaults_and_size_normalisation() -> None:
    fields = _fields(maxGuests="", amenities=[])

    assert fields.size == "18 m²"
    assert fields.max_guests == 2
    assert fields.amenities == ["Wi-Fi", "Private Bathroom"]
    assert normalize_size("20m2") == "20m²"
    assert normalize_size("20 m²") == "20 m²"
    assert normalize_size("25 m") == "25 m²"


def test_new_room_id_skips_deleted_rooms() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    seed_rooms(store, {"room1": {"id": "room1"}, "room2": {"id": "room2"}}, order=["room2", "room1"])
    store.sets[DELETED_ROOMS_KEY].add("room7")
    catalogue = _catalogue(client, store)

    room = asyncio.run(
        catalogue.create_room(
            _fields(), [_jpeg(data=b"cover"), ImageUpload("b.png", "image/png", b"second")]
        )
    )

    assert room.id == "room8"
    assert room_files(client, "room8") == ["image-1.png", "main.jpg"]
    assert room_bytes(client, "room8", "main.jpg") == b"cover"
    assert room.main_image_url == "https://cdn.test/rooms/room8/main.jpg"
    stored = store.values[ROOM_METADATA_KEY]["room8"]
    assert stored["name"] == "Sakura Room"
    assert stored["size"] == "18 m²"
    assert stored["mainImageUrl"] == room.main_image_url
    assert store.values[ROOM_ORDER_KEY] == ["room2", "room1", "room8"]
    assert store.values[CMS_CONFIG_KEY]["roomsLastUpdated"] > 0


def test_create_room_requires_images() -> None:
    with pytest.raises(InvalidRequestError):
        asyncio.run(_catalogue(FakeS3Client(), FakeMetadataStore()).create_room(_fields(), []))


def test_create_room_rejects_non_images_before_upload() -> None:
    client = FakeS3Client()
    uploads = [_jpeg(), ImageUpload("menu.pdf", "application/pdf", b"%PDF")]

    with pytest.raises(InvalidRequestError, match="All files must be images"):
        asyncio.run(_catalogue(client, FakeMetadataStore()).create_room(_fields(), uploads))

    assert client.calls == []


def test_create_room_cleans_up_partial_upload() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    client.fail_on("put_object", key="rooms/room1/image-1.jpg")

    with pytest.raises(StorageOperationError, match="Failed to upload images"):
        asyncio.run(_catalogue(client, store).create_room(_fields(), [_jpeg(), _jpeg("b.jpg")]))

    assert room_files(client, "room1") == []
    assert ROOM_METADATA_KEY not in store.values


def test_list_rooms_orders_and_describes_rooms() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    seed_rooms(
        store,
        {
            room_id: {"id": room_id, "name": room_id.title(), "lastUpdated": 7}
            for room_id in ("room1", "room2", "room3", "room10")
        },
        order=["room3", "room1"],
    )
    seed_room(
        client,
        "room1",
        {
            "main.jpg": b"m",
            "image-10.jpg": b"10",
            "image-2.jpg": b"2",
            "_hidden_image-3.jpg": b"3",
        },
    )
    seed_room(client, "room2", {"image-4.jpg": b"4"})

    rooms = asyncio.run(_catalogue(client, store).list_rooms())

    assert [room.id for room in rooms] == ["room3", "room1", "room2", "room10"]
    room3, room1, room2, _ = rooms
    assert room3.main_image == "/images/placeholder-room.jpg"
    assert room3.has_images is False
    assert room1.main_image == "https://cdn.test/rooms/room1/main.jpg"
    assert [image.filename for image in room1.images] == ["image-2.jpg", "image-10.jpg"]
    assert room1.last_updated == 7
    assert room2.main_image == "https://cdn.test/rooms/room2/image-4.jpg"


def test_update_room_appends_images_and_keeps_main_url() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    seed_room(client, "room2", {"main.jpg": b"m", "_hidden_image-3.jpg": b"3"})
    seed_rooms(
        store,
        {"room2": {"id": "room2", "name": "Old", "mainImageUrl": "https://cdn.test/rooms/room2/main.jpg", "lastUpdated": 5}},
    )

    update = asyncio.run(
        _catalogue(client, store).update_room("room2", _fields(name="New"), [_jpeg(data=b"new")])
    )

    assert update.added_images == ["image-4.jpg"]
    assert update.failed_images == []
    stored = store.values[ROOM_METADATA_KEY]["room2"]
    assert stored["name"] == "New"
    assert stored["mainImageUrl"] == "https://cdn.test/rooms/room2/main.jpg"
    assert stored["lastUpdated"] > 5
    assert room_bytes(client, "room2", "image-4.jpg") == b"new"


def test_update_unknown_room_is_not_found() -> None:
    with pytest.raises(RoomNotFoundError):
        asyncio.run(
            _catalogue(FakeS3Client(), FakeMetadataStore()).update_room("room9", _fields(), [])
        )


def test_replace_image_overwrites_bytes() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    seed_room(client, "room1", {"main.jpg": b"old"})
    seed_rooms(store, {"room1": {"id": "room1", "lastUpdated": 3}})

    image, last_updated = asyncio.run(
        _catalogue(client, store).replace_image("room1", "main.jpg", _jpeg(data=b"fresh"))
    )

    assert image.filename == "main.jpg"
    assert room_bytes(client, "room1", "main.jpg") == b"fresh"
    assert last_updated is not None and last_updated > 3
    assert store.values[ROOM_METADATA_KEY]["room1"]["mainImageUrl"] == image.url


def test_room_order_drops_deleted_and_rejects_bad_ids() -> None:
    store = FakeMetadataStore()
    store.sets[DELETED_ROOMS_KEY].add("room2")
    catalogue = _catalogue(FakeS3Client(), store)

    assert asyncio.run(catalogue.set_order(["room3", "room2", "room1"])) == ["room3", "room1"]
    assert asyncio.run(catalogue.get_order()) == ["room3", "room1"]
    assert asyncio.run(catalogue.list_deleted_rooms()) == ["room2"]
    with pytest.raises(InvalidRequestError):
        asyncio.run(catalogue.set_order(["room1", "suite"]))
