"""Shared fixtures for the session manager tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from qwery_mcp._exceptions import DatasourceNotFoundError
from qwery_mcp.catalog import ResolvedDatasource
from qwery_mcp.session_manager import ConnectionPool, Session, SessionKey


class FakeCatalog:
    """In-memory catalog that counts resolve calls."""

    def __init__(self, *datasources: ResolvedDatasource):
        self.datasources = {ds.datasource_id: ds for ds in datasources}
        self.calls: list[str] = []

    async def resolve(self, datasource_id: str) -> ResolvedDatasource:
        self.calls.append(datasource_id)
        try:
            return self.datasources[datasource_id]
        except KeyError:
            raise DatasourceNotFoundError(f"Datasource not found: {datasource_id}") from None


def make_datasource(datasource_id, provider="postgresql", name=None, **descriptor):
    return ResolvedDatasource(
        datasource_id=datasource_id,
        provider=provider,
        logical_database_name=name or f"{datasource_id}_db",
        connection_descriptor=descriptor,
    )


def make_engine():
    engine = MagicMock()
    engine.name = "fake-engine"
    engine.loaded_extensions = set()
    engine.run = AsyncMock()
    engine.fetch_rows = AsyncMock(return_value=[])
    engine.cursor = AsyncMock(side_effect=lambda: MagicMock())
    engine.close = AsyncMock()
    return engine


@pytest.fixture
def fake_catalog():
    return FakeCatalog(
        make_datasource("pg1"),
        make_datasource("sheet1", provider="gsheet-csv"),
        make_datasource("mysql1", provider="mysql"),
    )


@pytest.fixture
def mock_driver():
    driver = MagicMock()
    driver.attach = AsyncMock()
    driver.detach = AsyncMock()
    return driver


@pytest.fixture
def session(tmp_path):
    engine = make_engine()
    pool = ConnectionPool(engine.cursor, max_size=2, acquire_timeout=1.0, name="test")
    return Session(SessionKey("conv-1", str(tmp_path)), engine, pool)
