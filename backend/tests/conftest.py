"""Pytest configuration for backend tests."""
from __future__ import annotations

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    backend_path = str(backend_dir)
    if backend_path not in sys.path:
        sys.path.insert(0, backend_path)


_ensure_backend_on_path()

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("ADMIN_USER", "admin")
os.environ.setdefault("ADMIN_PASS", "s3cret")
os.environ.setdefault("S3_BUCKET", "test-bucket")
os.environ.setdefault("S3_PUBLIC_BASE_URL", "https://cdn.test")
os.environ.setdefault("SWAP_SETTLE_TIMEOUT_SECONDS", "0")
os.environ.setdefault("SWAP_SETTLE_INITIAL_DELAY_SECONDS", "0")
os.environ.setdefault("MAIL_DRIVER", "console")
os.environ.setdefault("CONTACT_EMAIL", "frontdesk@picainn.test")

from app.core.config import get_settings  # noqa: E402
from app.core.mail import override_mail_provider, reset_mail_provider  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Every test starts from the environment above with no cached providers."""

    get_settings.cache_clear()
    reset_mail_provider()
    try:
        yield
    finally:
        override_mail_provider(None)
        reset_mail_provider()
        get_settings.cache_clear()


@pytest.fixture()
def api_backend() -> Generator[tuple[object, object], None, None]:
    """Point the app's storage dependencies at in-memory fakes."""

    from app.deps import get_metadata_store, get_object_store
    from app.main import app
    from app.services.storage import ObjectStore
    from tests.utils import BASE_URL, BUCKET, FakeMetadataStore, FakeS3Client

    client = FakeS3Client()
    store = FakeMetadataStore()
    objects = ObjectStore(client, BUCKET, base_url=BASE_URL)
    app.dependency_overrides[get_object_store] = lambda: objects
    app.dependency_overrides[get_metadata_store] = lambda: store
    try:
        yield client, store
    finally:
        app.dependency_overrides.clear()
