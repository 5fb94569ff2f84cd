"""Shared fixtures: a throwaway database, local storage and fake services."""

import json

import pytest
from sqlalchemy.orm import Session, sessionmaker

from tests.fakes import (
    CONTENT_DOCUMENT,
    HOMEPAGE_MARKDOWN,
    MENU_MARKDOWN,
    VISION_DOCUMENT,
    WEBSITE,
    FakeAIClient,
    FakeBusinessClient,
    FakeDownloader,
    FakeImageSearch,
    FakeScraper,
    fenced,
)
from venue_agent.core.config import AppConfig
from venue_agent.core.schema import ScrapeResult
from venue_agent.db.engine import create_db_engine
from venue_agent.db.models import Base
from venue_agent.ingestion.pipeline import PipelineServices
from venue_agent.ingestion.storage import LocalObjectStorage


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine with savepoint support and all tables."""
    engine = create_db_engine(tmp_path / "test.db")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Session:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "storage", "https://cdn.example.com")


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def site_scraper() -> FakeScraper:
    """Scraper that knows the venue homepage and its menu page."""
    return FakeScraper(
        {
            WEBSITE: ScrapeResult(url=WEBSITE, markdown=HOMEPAGE_MARKDOWN),
            f"{WEBSITE}/menu": ScrapeResult(url=f"{WEBSITE}/menu", markdown=MENU_MARKDOWN),
        }
    )


@pytest.fixture
def services(site_scraper, storage) -> PipelineServices:
    """Pipeline services where every external call succeeds."""
    return PipelineServices(
        business_client=FakeBusinessClient(),
        scraper=site_scraper,
        downloader=FakeDownloader(),
        content_ai=FakeAIClient(fenced(CONTENT_DOCUMENT)),
        vision_ai=FakeAIClient(json.dumps(VISION_DOCUMENT)),
        storage=storage,
        image_search=FakeImageSearch(),
    )
