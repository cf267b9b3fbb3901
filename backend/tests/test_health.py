from fastapi.testclient import TestClient

from app.api.v1 import health
from app.main import app
from app.services.errors import StorageUnavailableError
from app.services.storage import ObjectStore

from tests.utils import BASE_URL, BUCKET, FakeMetadataStore, FakeS3Client


def get_client() -> TestClient:
    return TestClient(app)


def _backends(monkeypatch, *, store: FakeMetadataStore, client: FakeS3Client | None) -> None:
    monkeypatch.setattr(health, "get_metadata_store", lambda: store)
    if client is None:
        def _unconfigured() -> ObjectStore:
            raise StorageUnavailableError(details="S3_BUCKET is not set")

        monkeypatch.setattr(health, "get_object_store", _unconfigured)
    else:
        objects = ObjectStore(client, BUCKET, base_url=BASE_URL)
        monkeypatch.setattr(health, "get_object_store", lambda: objects)


def test_health_live() -> None:
    response = get_client().get("/api/v1/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_ready(monkeypatch) -> None:
    _backends(monkeypatch, store=FakeMetadataStore(), client=FakeS3Client())

    response = get_client().get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_ready_reports_metadata_store_outage(monkeypatch) -> None:
    store = FakeMetadataStore()
    store.healthy = False
    _backends(monkeypatch, store=store, client=FakeS3Client())

    response = get_client().get("/api/v1/health/ready")

    assert response.status_code == 503
    assert response.json() == {"detail": "metadata_store_unreachable"}


def test_health_ready_reports_missing_storage(monkeypatch) -> None:
    _backends(monkeypatch, store=FakeMetadataStore(), client=None)

    response = get_client().get("/api/v1/health/ready")

    assert response.status_code == 503
    assert response.json() == {"detail": "storage_not_configured"}


def test_health_ready_reports_unreachable_bucket(monkeypatch) -> None:
    client = FakeS3Client()
    client.fail_on("head_bucket", times=None)
    _backends(monkeypatch, store=FakeMetadataStore(), client=client)

    response = get_client().get("/api/v1/health/ready")

    assert response.status_code == 503
    assert response.json() == {"detail": "storage_unreachable"}
