import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("APP_API_TOKEN", "test-app-token")
os.environ.setdefault("INVENTORY_PLATFORM_DEFAULT", "stub")

import stockledger.models  # noqa: F401
from stockledger.core.config import settings
from stockledger.core.deps import get_db
from stockledger.db.base import Base
from stockledger.main import app
from stockledger.services.inventory_platform import StubInventoryPlatform, get_platform

SHOP = "demo-shop.myshopify.com"


@pytest.fixture()
def test_context():
    original_secret = settings.webhook_secret
    original_token = settings.app_api_token
    settings.webhook_secret = "test-webhook-secret"
    settings.app_api_token = "test-app-token"

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    platform = StubInventoryPlatform()

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_platform] = lambda: platform

    with TestClient(app) as client:
        yield client, session_local, platform

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    settings.webhook_secret = original_secret
    settings.app_api_token = original_token


@pytest.fixture()
def app_headers() -> dict[str, str]:
    return {"X-Shop-Domain": SHOP, "X-App-Token": "test-app-token"}
