from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("S3_BUCKET", "test-bucket")
os.environ.setdefault("S3_ACCESS_KEY_ID", "test-key")
os.environ.setdefault("S3_SECRET_ACCESS_KEY", "test-secret")
os.environ.setdefault("S3_ENDPOINT_URL", "http://localhost:9000")
os.environ["API_PREFIX"] = "/example"
os.environ["API_KEY_ENABLED"] = "false"
os.environ["ENABLE_METRICS"] = "true"

from storage_gateway.common.config import Settings, get_settings  # noqa: E402

get_settings.cache_clear()  # type: ignore[attr-defined]

from storage_gateway.api.v1.deps import get_storage  # noqa: E402
from storage_gateway.main import create_app  # noqa: E402
from tests.services.mock_storage import MockStorageClient  # noqa: E402

BUCKET = "test-bucket"


@pytest.fixture(autouse=True)
def reset_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def settings() -> Settings:
    return Settings(S3_BUCKET=BUCKET, S3_ACCESS_KEY_ID="k", S3_SECRET_ACCESS_KEY="s")


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def client(storage):
    app = create_app()
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
