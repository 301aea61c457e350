from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from examquest.core.config import Settings
from examquest.main import create_app
from examquest.services.catalog import ContentCatalog

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{db_path}",
        jwt_secret="test-secret-key-1234567890",
        cors_origins=["*"],
        bootstrap_admin_emails=[ADMIN_EMAIL],
        persistence_debounce_seconds=0.01,
        boss_lock_seconds=0,
    )


@pytest.fixture()
def client(settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def catalog(settings) -> ContentCatalog:
    return ContentCatalog.from_file(settings.content_path)

