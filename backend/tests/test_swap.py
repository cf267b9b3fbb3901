import asyncio
from collections import Counter

import pytest
from prometheus_client import REGISTRY

from app.services.errors import ImageNotFoundError, InvalidRequestError
from app.services.main_image import MainImageEnforcer
from app.services.metadata_store import ROOM_METADATA_KEY
from app.services.swap import SwapOrchestrator, SwapOutcome, SwapPhase

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


def _orchestrator(client: FakeS3Client, store: FakeMetadataStore | None = None) -> SwapOrchestrator:
    return SwapOrchestrator(make_repository(client, store), locks=fresh_locks())


def _room9(client: FakeS3Client) -> None:
    seed_room(client, "room9", {"main.jpg": b"main", "image-1.jpg": b"one", "image-2.jpg": b"two"})


def _contents(client: FakeS3Client, room_id: str) -> Counter:
    return Counter(room_bytes(client, room_id, name) for name in room_files(client, room_id))


def test_swap_exchanges_bytes_between_main_and_target() -> None:
    client = FakeS3Client()
    _room9(client)
    before = _contents(client, "room9")

    result = asyncio.run(_orchestrator(client).swap_main("room9", "image-1.jpg"))

    assert result.outcome is SwapOutcome.SUCCESS
    assert result.success is True
    assert room_files(client, "room9") == ["image-1.jpg", "image-2.jpg", "main.jpg"]
    assert room_bytes(client, "room9", "main.jpg") == b"one"
    assert room_bytes(client, "room9", "image-1.jpg") == b"main"
    assert room_bytes(client, "room9", "image-2.jpg") == b"two"
    assert _contents(client, "room9") == before
    assert result.old_main == "main.jpg"
    assert result.old_source == "image-1.jpg"
    assert result.new_main is not None and result.new_main.filename == "main.jpg"
    assert result.new_source is not None and result.new_source.filename == "image-1.jpg"
    assert result.verification is not None
    assert result.verification.main_image_exists is True
    assert result.verification.source_image_exists is True


def test_swap_leaves_no_staging_objects_behind() -> None:
    client = FakeS3Client()
    _room9(client)

    asyncio.run(_orchestrator(client).swap_main("room9", "image-2.jpg"))

    assert not [key for key in client.objects if "_swap_" in key]
    staged = [key for _, key in client.operations("put_object") if key and "_swap_" in key]
    assert len(staged) == 2


def test_swap_keeps_each_image_extension() -> None:
    client = FakeS3Client()
    seed_room(client, "room4", {"main.jpg": b"jpeg", "image-1.png": b"png"})

    result = asyncio.run(_orchestrator(client).swap_main("room4", "image-1.png"))

    assert result.outcome is SwapOutcome.SUCCESS
    assert room_files(client, "room4") == ["image-1.jpg", "main.png"]
    assert room_bytes(client, "room4", "main.png") == b"png"
    assert room_bytes(client, "room4", "image-1.jpg") == b"jpeg"
    assert client.objects["rooms/room4/main.png"][1] == "image/png"
    assert result.verification is not None
    assert result.verification.url_changed is True


def test_failed_clear_of_renamed_main_is_retried() -> None:
    client = FakeS3Client()
    seed_room(client, "room4", {"main.jpg": b"jpeg", "image-1.png": b"png"})
    client.fail_on("delete_object", key="rooms/room4/main.jpg")

    result = asyncio.run(_orchestrator(client).swap_main("room4", "image-1.png"))

    assert result.outcome is SwapOutcome.SUCCESS
    assert room_files(client, "room4") == ["image-1.jpg", "main.png"]
    assert result.verification is not None
    assert result.verification.stale_keys == []
    deletes = [key for _, key in client.operations("delete_object")]
    assert deletes.count("rooms/room4/main.jpg") == 2


def test_undeletable_renamed_main_is_reported() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    seed_room(client, "room4", {"main.jpg": b"jpeg", "image-1.png": b"png"})
    seed_rooms(store, {"room4": {"id": "room4", "name": "Maple", "lastUpdated": 7}})
    client.fail_on("delete_object", key="rooms/room4/main.jpg", times=None)

    result = asyncio.run(_orchestrator(client, store).swap_main("room4", "image-1.png"))

    assert result.outcome is SwapOutcome.CLEANUP_FAILED
    assert result.success is False
    assert result.manual_recovery_required is True
    assert result.failed_phase is SwapPhase.CLEAR
    assert result.verification is not None
    assert result.verification.main_image_exists is True
    assert result.verification.stale_keys == ["rooms/room4/main.jpg"]
    assert result.details == "rooms/room4/main.jpg"
    assert room_bytes(client, "room4", "main.png") == b"png"
    record = store.values[ROOM_METADATA_KEY]["room4"]
    assert record["mainImageUrl"] == "https://cdn.test/rooms/room4/main.png"


def test_swap_refreshes_room_metadata() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    _room9(client)
    seed_rooms(store, {"room9": {"id": "room9", "name": "Cedar", "lastUpdated": 42}})

    result = asyncio.run(_orchestrator(client, store).swap_main("room9", "image-1.jpg"))

    record = store.values[ROOM_METADATA_KEY]["room9"]
    assert record["mainImageUrl"] == "https://cdn.test/rooms/room9/main.jpg"
    assert record["lastUpdated"] > 42
    assert result.last_updated == record["lastUpdated"]


def test_swapping_the_main_image_is_a_noop() -> None:
    client = FakeS3Client()
    _room9(client)

    result = asyncio.run(_orchestrator(client).swap_main("room9", "main.jpg"))

    assert result.outcome is SwapOutcome.NOOP
    assert result.success is True
    assert client.operations("put_object", "delete_object") == []


def test_unknown_target_is_rejected_before_mutation() -> None:
    client = FakeS3Client()
    _room9(client)

    with pytest.raises(ImageNotFoundError):
        asyncio.run(_orchestrator(client).swap_main("room9", "image-7.jpg"))

    assert client.operations("put_object", "delete_object") == []


@pytest.mark.parametrize(
    ("room_id", "filename"),
    [("", "image-1.jpg"), ("lobby", "image-1.jpg"), ("room9", "../main.jpg"), ("room9", "notes.txt")],
)
def test_invalid_input_makes_no_storage_calls(room_id: str, filename: str) -> None:
    client = FakeS3Client()
    _room9(client)

    with pytest.raises(InvalidRequestError):
        asyncio.run(_orchestrator(client).swap_main(room_id, filename))

    assert client.calls == []


def test_stage_failure_leaves_room_untouched() -> None:
    client = FakeS3Client()
    _room9(client)
    before = dict(client.objects)
    client.fail_on("put_object", contains="_target.")

    result = asyncio.run(_orchestrator(client).swap_main("room9", "image-1.jpg"))

    assert result.outcome is SwapOutcome.STAGE_FAILED
    assert result.success is False
    assert result.failed_phase is SwapPhase.STAGE
    assert client.objects == before


def test_commit_failure_restores_originals() -> None:
    client = FakeS3Client()
    _room9(client)
    client.fail_on("put_object", key="rooms/room9/image-1.jpg")

    result = asyncio.run(_orchestrator(client).swap_main("room9", "image-1.jpg"))

    assert result.outcome is SwapOutcome.COMMIT_FAILED
    assert result.failed_phase is SwapPhase.COMMIT
    assert result.manual_recovery_required is False
    assert room_files(client, "room9") == ["image-1.jpg", "image-2.jpg", "main.jpg"]
    assert room_bytes(client, "room9", "main.jpg") == b"main"
    assert room_bytes(client, "room9", "image-1.jpg") == b"one"


def test_failed_restore_keeps_staging_copies() -> None:
    client = FakeS3Client()
    _room9(client)
    client.fail_on("put_object", key="rooms/room9/main.jpg", times=None)

    result = asyncio.run(_orchestrator(client).swap_main("room9", "image-1.jpg"))

    assert result.outcome is SwapOutcome.RESTORE_FAILED
    assert result.success is False
    assert result.manual_recovery_required is True
    assert len(result.staging_keys) == 2
    staged = {key: client.objects[key][0] for key in result.staging_keys}
    assert sorted(staged.values()) == [b"main", b"one"]


def test_concurrent_swaps_on_one_room_do_not_lose_images() -> None:
    client = FakeS3Client()
    _room9(client)
    orchestrator = _orchestrator(client)

    async def _both():
        return await asyncio.gather(
            orchestrator.swap_main("room9", "image-1.jpg"),
            orchestrator.swap_main("room9", "image-2.jpg"),
        )

    first, second = asyncio.run(_both())

    assert first.outcome is SwapOutcome.SUCCESS
    assert second.outcome is SwapOutcome.SUCCESS
    assert room_files(client, "room9") == ["image-1.jpg", "image-2.jpg", "main.jpg"]
    assert sorted(room_bytes(client, "room9", name) for name in room_files(client, "room9")) == [
        b"main",
        b"one",
        b"two",
    ]
    assert room_bytes(client, "room9", "main.jpg") == b"two"


def test_room_without_main_gets_one_before_swapping() -> None:
    client = FakeS3Client()
    seed_room(client, "room8", {"image-1.jpg": b"one", "image-2.jpg": b"two"})
    repository = make_repository(client)
    locks = fresh_locks()
    enforcer = MainImageEnforcer(repository, locks=locks, chooser=lambda candidates: candidates[0])
    orchestrator = SwapOrchestrator(repository, enforcer, locks=locks)

    result = asyncio.run(orchestrator.swap_main("room8", "image-2.jpg"))

    assert result.outcome is SwapOutcome.SUCCESS
    assert room_bytes(client, "room8", "main.jpg") == b"two"
    assert room_bytes(client, "room8", "image-2.jpg") == b"one"


def test_rejected_swaps_are_counted() -> None:
    client = FakeS3Client()
    _room9(client)
    before = REGISTRY.get_sample_value("room_image_swaps_total", {"outcome": "rejected"}) or 0.0

    with pytest.raises(ImageNotFoundError):
        asyncio.run(_orchestrator(client).swap_main("room9", "image-7.jpg"))
    with pytest.raises(InvalidRequestError):
        asyncio.run(_orchestrator(client).swap_main("lobby", "image-1.jpg"))

    after = REGISTRY.get_sample_value("room_image_swaps_total", {"outcome": "rejected"})
    assert after == before + 2
