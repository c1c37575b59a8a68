"""
Pytest Configuration and Fixtures for the Ranking Core Tests
============================================================

Purpose
-------
Centralized fixtures for the test suite: environment, database, services and
mocks.

Responsibilities
----------------
- Force the testing environment before any ``src`` module loads
- Per-test SQLite database through DatabaseService (fast, isolated)
- Optional PostgreSQL testcontainer when RANKING_TEST_POSTGRES=1
- Service container fixtures in inline and deferred aggregation modes
- Mock fixtures for unit tests

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests use a real database through DatabaseService
- Database fixtures provide a clean schema per test
"""

from __future__ import annotations

import os

# Config and logging are configured at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import AsyncGenerator, Generator, Optional

import pytest
import pytest_asyncio

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.core.services.container import ServiceContainer

logger = get_logger(__name__)

USE_POSTGRES = os.getenv("RANKING_TEST_POSTGRES") == "1"


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Reload Config so the test environment above is in effect."""
    Config.reload()


@pytest.fixture(autouse=True)
def ranking_config(monkeypatch) -> Generator[type[Config], None, None]:
    """
    Known ranking settings for every test.

    Tests override individual values with ``monkeypatch.setattr(Config, ...)``.
    """
    monkeypatch.setattr(Config, "RANKING_SCOPES", ["all", "dinner", "dessert"])
    monkeypatch.setattr(Config, "TREND_EPSILON", 0.01)
    monkeypatch.setattr(Config, "LOCK_BACKEND", "memory")
    monkeypatch.setattr(Config, "LOCK_WAIT_TIMEOUT_SECONDS", 5.0)
    monkeypatch.setattr(Config, "HISTORY_PAGE_SIZE", 50)
    monkeypatch.setattr(Config, "RANKING_NOTE_MAX_LENGTH", 2000)
    monkeypatch.setattr(Config, "RANKING_MAX_PHOTO_REFS", 10)
    monkeypatch.setattr(Config, "RANK_DISTRIBUTION_DEPTH", 5)
    monkeypatch.setattr(Config, "TOP_DISHES_MAX_LIMIT", 100)
    yield Config


# ============================================================================
# TESTCONTAINERS FIXTURES (opt-in)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_url() -> Generator[Optional[str], None, None]:
    """
    Start a PostgreSQL testcontainer when RANKING_TEST_POSTGRES=1.

    Scope: session (container persists across all tests)
    """
    if not USE_POSTGRES:
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()

    yield container.get_connection_url()

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path, postgres_url) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialized DatabaseService with a fresh schema.

    Scope: function (new database file per test)
    """
    url = postgres_url or f"sqlite+aiosqlite:///{tmp_path / 'ranking.db'}"

    await DatabaseService.initialize(url)
    if postgres_url:
        await DatabaseService.drop_all()
    await DatabaseService.create_all()

    yield DatabaseService

    await DatabaseService.shutdown()


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


async def _build_container(mode: str) -> ServiceContainer:
    container = ServiceContainer(
        Config,
        EventBus(),
        get_logger("tests.container"),
        aggregation_mode=mode,
    )
    await container.initialize()
    return container


@pytest_asyncio.fixture
async def container(database) -> AsyncGenerator[ServiceContainer, None]:
    """Services with inline aggregation (recomputed before a mutation returns)."""
    container = await _build_container("inline")
    yield container
    await container.shutdown()


@pytest_asyncio.fixture
async def deferred_container(database) -> AsyncGenerator[ServiceContainer, None]:
    """Services with deferred aggregation (call ``aggregation.drain()``)."""
    container = await _build_container("deferred")
    yield container
    await container.shutdown()


@pytest.fixture
def ranking(container):
    return container.ranking


@pytest.fixture
def query(container):
    return container.query


@pytest.fixture
def aggregation(container):
    return container.aggregation


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.drain = mocker.AsyncMock(return_value=0)
    mock_bus.subscribe = mocker.MagicMock(return_value="listener-id")
    return mock_bus


@pytest.fixture
def mock_ranking_service(mocker):
    service = mocker.MagicMock()
    service.upsert_rank = mocker.AsyncMock()
    service.remove_rank = mocker.AsyncMock()
    return service


@pytest.fixture
def mock_query_service(mocker):
    service = mocker.MagicMock()
    service.list_user_rankings = mocker.AsyncMock(return_value=[])
    service.get_dish_aggregate = mocker.AsyncMock(return_value=None)
    service.list_top_dishes = mocker.AsyncMock(return_value=[])
    return service

