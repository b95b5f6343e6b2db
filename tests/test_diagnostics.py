"""
Tests for qwery_mcp.diagnostics.
"""

from unittest.mock import AsyncMock

import duckdb
import pytest
import pytest_asyncio

from qwery_mcp.diagnostics import DiagnosticMessage, explain_failure, is_catalog_error
from qwery_mcp.engine import AnalyticalEngine


@pytest_asyncio.fixture
async def engine():
    engine = await AnalyticalEngine.open("diagnostics")
    await engine.run("ATTACH ':memory:' AS db1")
    await engine.run("CREATE TABLE db1.main.orders AS SELECT 1 AS id")
    await engine.run("CREATE TABLE db1.main.customers AS SELECT 1 AS id")
    yield engine
    await engine.close()


def test_is_catalog_error():
    assert is_catalog_error(duckdb.CatalogException("Table with name t does not exist!"))
    assert is_catalog_error(duckdb.BinderException("Catalog Error: schema x does not exist"))
    assert not is_catalog_error(duckdb.ParserException("syntax error at or near SELEC"))


@pytest.mark.asyncio
async def test_expected_database_not_attached(engine):
    diagnostics = await explain_failure(engine, "SELECT * FROM db2.main.t", "db2", "Catalog Error")

    assert diagnostics.attached_databases == ["db1"]
    assert not diagnostics.expected_database_attached
    assert diagnostics.tables is None
    assert diagnostics.message == (
        "Query failed: Catalog Error\n"
        "Expected database 'db2' is NOT attached.\n"
        "Attached databases: db1"
    )


@pytest.mark.asyncio
async def test_expected_database_attached_lists_tables(engine):
    diagnostics = await explain_failure(engine, "SELECT * FROM DB1.main.t", "DB1", "missing t")

    assert diagnostics.expected_database_attached
    assert diagnostics.tables == ["customers", "orders"]
    assert "Tables in 'DB1': customers, orders" in diagnostics.message
    assert diagnostics.to_dict()["tables"] == ["customers", "orders"]


@pytest.mark.asyncio
async def test_without_expected_database(engine):
    diagnostics = await explain_failure(engine, "SELECT 1", None, ValueError("x"))
    assert diagnostics.tables is None
    assert diagnostics.message == "Query failed: x\nAttached databases: db1"


@pytest.mark.asyncio
async def test_listing_failure_is_tolerated():
    executor = AsyncMock()
    executor.fetch_rows.side_effect = duckdb.ConnectionException("closed")

    diagnostics = await explain_failure(executor, "SELECT 1", "db1", "boom")

    assert diagnostics.attached_databases is None
    assert diagnostics.tables is None
    assert diagnostics.message == "Query failed: boom\nExpected database 'db1' is NOT attached."


def test_message_with_nothing_attached():
    diagnostics = DiagnosticMessage(error="e", query="q", attached_databases=[])
    assert diagnostics.message == "Query failed: e\nAttached databases: (none)"
