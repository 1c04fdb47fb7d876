"""
Test configuration and fixtures for LinkLab.
This centralizes all test setup, making individual tests clean.
"""

import os

# Must be set before linklab.config is imported
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["CACHE_BACKEND"] = "null"
os.environ["GEO_BACKEND"] = "null"
os.environ["FETCH_PAGE_METADATA"] = "false"

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from linklab.database.connection import Base, SessionLocal, engine, get_db  # noqa: E402
from linklab.demo.registry import InMemoryDemoRegistry  # noqa: E402
from linklab.dependencies import (  # noqa: E402
    get_click_recorder,
    get_click_store,
    get_demo_registry,
    get_metadata_fetcher,
)
from linklab.models.link import Link  # noqa: E402
from linklab.services.click_recorder import ClickRecorder  # noqa: E402
from linklab.services.enrichment import NullGeoResolver  # noqa: E402
from linklab.storage.strategies import SqlAlchemyClickStore  # noqa: E402
from linklab.utils import utc_now  # noqa: E402


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    This ensures tests are isolated and don't affect each other.
    """
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def demo_registry():
    return InMemoryDemoRegistry()


@pytest.fixture
def click_store(db_session):
    return SqlAlchemyClickStore(SessionLocal)


@pytest.fixture
def recorder(click_store):
    return ClickRecorder(store=click_store, geo_resolver=NullGeoResolver())


@pytest.fixture
def link_factory(db_session):
    """Insert Link rows directly, bypassing the creation service"""
    def make(short_code, original_url="https://dest.example/", **fields):
        link = Link(short_code=short_code, original_url=original_url, **fields)
        db_session.add(link)
        db_session.commit()
        db_session.refresh(link)
        return link
    return make


@pytest.fixture
def yesterday():
    return utc_now() - timedelta(days=1)


@pytest.fixture(scope="function")
def client(db_session, demo_registry, click_store, recorder):
    """
    Create a test client with every stateful dependency overridden.
    This is the main fixture that tests will use.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_demo_registry] = lambda: demo_registry
    app.dependency_overrides[get_click_store] = lambda: click_store
    app.dependency_overrides[get_click_recorder] = lambda: recorder
    app.dependency_overrides[get_metadata_fetcher] = lambda: None

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def drain_clicks(client, recorder):
    """Block until detached click recordings on the app's event loop finish"""
    def drain():
        client.portal.call(recorder.drain)
    return drain


@pytest.fixture
def owner_headers():
    return {"X-Owner-Id": "owner-1"}
