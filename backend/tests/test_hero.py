import asyncio

import pytest

from app.services.errors import ImageNotFoundError
from app.services.hero import HeroImageService
from app.services.metadata_store import CMS_CONFIG_KEY
from app.services.storage import ImageUpload, ObjectStore

from tests.utils import BASE_URL, BUCKET, FakeMetadataStore, FakeS3Client

FALLBACK = "/images/hero/hero-background.jpg"


def _service(client: FakeS3Client, store: FakeMetadataStore) -> HeroImageService:
    return HeroImageService(ObjectStore(client, BUCKET, base_url=BASE_URL), store, fallback_url=FALLBACK)


def test_fallback_when_nothing_uploaded() -> None:
    hero = asyncio.run(_service(FakeS3Client(), FakeMetadataStore()).current())

    assert hero.url == FALLBACK
    assert hero.is_fallback is True


def test_fallback_when_metadata_store_is_down() -> None:
    store = FakeMetadataStore()
    store.fail("get")

    hero = asyncio.run(_service(FakeS3Client(), store).current())

    assert hero.url == FALLBACK


def test_replace_swaps_object_and_bumps_timestamp() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    client.objects["hero/hero-background.jpg"] = (b"old", "image/jpeg")
    store.values[CMS_CONFIG_KEY] = {
        "heroImageUrl": "https://cdn.test/hero/hero-background.jpg",
        "heroLastUpdated": 100,
    }
    service = _service(client, store)

    updated = asyncio.run(service.replace(ImageUpload("sunset.png", "image/png", b"new")))

    assert updated.url == "https://cdn.test/hero/hero-background.png"
    assert updated.timestamp is not None and updated.timestamp > 100
    assert sorted(client.objects) == ["hero/hero-background.png"]
    current = asyncio.run(service.current())
    assert current.url == updated.url
    assert current.timestamp == updated.timestamp


def test_remove_requires_existing_hero() -> None:
    with pytest.raises(ImageNotFoundError):
        asyncio.run(_service(FakeS3Client(), FakeMetadataStore()).remove())


def test_remove_clears_hero() -> None:
    client = FakeS3Client()
    store = FakeMetadataStore()
    client.objects["hero/hero-background.jpg"] = (b"old", "image/jpeg")
    store.values[CMS_CONFIG_KEY] = {"heroImageUrl": "https://cdn.test/hero/hero-background.jpg"}
    service = _service(client, store)

    timestamp = asyncio.run(service.remove())

    assert timestamp > 0
    assert client.objects == {}
    assert "heroImageUrl" not in store.values[CMS_CONFIG_KEY]
    assert asyncio.run(service.current()).is_fallback is True
