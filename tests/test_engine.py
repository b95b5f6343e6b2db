"""
Tests for qwery_mcp.engine.AnalyticalEngine using a real in-memory DuckDB instance.
"""

import duckdb
import pytest

from qwery_mcp.engine import AnalyticalEngine


@pytest.mark.asyncio
async def test_open_run_and_fetch():
    engine = await AnalyticalEngine.open("conv-1@ws", {"threads": 1})
    try:
        assert engine.name == "conv-1@ws"
        assert not engine.is_closed
        await engine.run("CREATE TABLE t AS SELECT 1 AS x UNION ALL SELECT 2")
        assert await engine.fetch_rows("SELECT x FROM t ORDER BY x") == [(1,), (2,)]
        assert await engine.fetch_rows("SELECT current_setting('threads')") == [(1,)]
    finally:
        await engine.close()
    assert engine.is_closed


@pytest.mark.asyncio
async def test_cursors_share_attached_databases():
    engine = await AnalyticalEngine.open("shared")
    try:
        await engine.run("ATTACH ':memory:' AS other")
        await engine.run("CREATE TABLE other.main.t AS SELECT 42 AS answer")
        cursor = await engine.cursor()
        assert cursor.execute("SELECT answer FROM other.t").fetchall() == [(42,)]
        cursor.close()
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_close_is_idempotent():
    engine = await AnalyticalEngine.open("twice")
    await engine.close()
    await engine.close()
    assert engine.is_closed


@pytest.mark.asyncio
async def test_open_rejects_bad_settings():
    with pytest.raises(duckdb.Error):
        await AnalyticalEngine.open("bad", {"no_such_setting": 1})


@pytest.mark.asyncio
async def test_errors_propagate():
    engine = await AnalyticalEngine.open("errors")
    try:
        with pytest.raises(duckdb.CatalogException):
            await engine.fetch_rows("SELECT * FROM missing_table")
    finally:
        await engine.close()
