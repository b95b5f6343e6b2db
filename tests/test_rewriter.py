"""
Tests for qwery_mcp.rewriter.
"""

import pytest

from qwery_mcp.rewriter import (
    SCHEMA_COLLAPSING_PROVIDERS,
    rewrite_for_databases,
    rewrite_query,
)


def test_schema_collapsing_providers():
    assert SCHEMA_COLLAPSING_PROVIDERS == frozenset({"gsheet-csv"})


@pytest.mark.parametrize(
    "sql, expected",
    [
        ('SELECT * FROM "db1".main.t', 'SELECT * FROM "db1".t'),
        ('SELECT * FROM "db1"."main".t', 'SELECT * FROM "db1".t'),
        ("SELECT * FROM db1.main.t", "SELECT * FROM db1.t"),
        ("SELECT * FROM DB1.MAIN.t", "SELECT * FROM DB1.t"),
        ('SELECT * FROM "db1" . main . "My Tab"', 'SELECT * FROM "db1"."My Tab"'),
        (
            "SELECT a.x FROM db1.main.a JOIN db1.main.b ON a.id = b.id",
            "SELECT a.x FROM db1.a JOIN db1.b ON a.id = b.id",
        ),
        # A table literally named "main" is kept.
        ("SELECT * FROM db1.main.main", "SELECT * FROM db1.main"),
        (
            'SELECT "db1".main.t.amount FROM "db1".main.t',
            'SELECT "db1".t.amount FROM "db1".t',
        ),
        (
            'SELECT db1.main."My Tab".x FROM db1.main."My Tab"',
            'SELECT db1."My Tab".x FROM db1."My Tab"',
        ),
    ],
)
def test_rewrite_query_collapses_main(sql, expected):
    assert rewrite_query(sql, "gsheet-csv", "db1") == expected


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM other.main.t",
        "SELECT * FROM xdb1.main.t",
        "SELECT * FROM db1x.main.t",
        "SELECT * FROM schema.db1.main.t",
        'SELECT * FROM "db1".main',
        "SELECT * FROM db1.t",
        # A column of a table named "main" cannot be told apart from a schema path.
        "SELECT db1.main.main.x FROM t",
    ],
)
def test_rewrite_query_leaves_other_references(sql):
    assert rewrite_query(sql, "gsheet-csv", "db1") == sql


@pytest.mark.parametrize("provider", ["postgresql", "mysql", "csv", "duckdb", "unknown"])
def test_rewrite_query_noop_for_other_providers(provider):
    sql = 'SELECT * FROM "db1".main.t'
    assert rewrite_query(sql, provider, "db1") == sql


@pytest.mark.parametrize(
    "sql",
    [
        'SELECT * FROM "db1".main.t',
        "SELECT * FROM db1.main.main.x",
        "SELECT db1.main.t.amount FROM db1.main.t",
        "SELECT * FROM db1.main.main",
        'WITH s AS (SELECT * FROM "db1"."main"."t") SELECT * FROM s',
    ],
)
def test_rewrite_query_is_idempotent(sql):
    once = rewrite_query(sql, "gsheet-csv", "db1")
    assert rewrite_query(once, "gsheet-csv", "db1") == once


def test_rewrite_query_escapes_regex_characters():
    sql = 'SELECT * FROM "a.b".main.t'
    assert rewrite_query(sql, "gsheet-csv", "a.b") == 'SELECT * FROM "a.b".t'
    assert rewrite_query('SELECT * FROM "axb".main.t', "gsheet-csv", "a.b") == (
        'SELECT * FROM "axb".main.t'
    )


def test_rewrite_query_empty_name_is_noop():
    assert rewrite_query("SELECT * FROM db.main.t", "gsheet-csv", "") == (
        "SELECT * FROM db.main.t"
    )


def test_rewrite_for_databases():
    sql = "SELECT * FROM sheet.main.t JOIN pg.main.u USING (id)"
    rewritten = rewrite_for_databases(
        sql, [("gsheet-csv", "sheet"), ("postgresql", "pg")]
    )
    assert rewritten == "SELECT * FROM sheet.t JOIN pg.main.u USING (id)"
