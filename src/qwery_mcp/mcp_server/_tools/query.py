"""
Query MCP Tools - Run SQL Against a Conversation's Attached Datasources.

Provides MCP tools for querying:
- query_run: Execute SQL in a conversation's DuckDB session, optionally after syncing a datasource
"""

import logging

from mcp.server.fastmcp import Context

from qwery_mcp._exceptions import QueryCatalogError
from qwery_mcp.formatters import format_table_data
from qwery_mcp.mcp_server._tools.mcp_server import mcp_server
from qwery_mcp.mcp_server._tools.shared import (
    ESTIMATED_BYTES_PER_CELL,
    _check_response_size,
    _get_session_manager,
    _resolve_workspace,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 1000
"""Default number of rows returned by query_run."""


@mcp_server.tool()
async def query_run(
    context: Context,
    conversation_id: str,
    sql: str,
    datasource_id: str | None = None,
    max_rows: int | None = DEFAULT_MAX_ROWS,
    format: str = "json-row",
    workspace: str | None = None,
) -> dict:
    """
    MCP Tool: Run a SQL query in a conversation's DuckDB session.

    Runs DuckDB SQL against the datasources attached to the conversation. Tables are
    addressed through the datasource's logical database name (see datasources_list):
    "db".main.table or "db".schema.table for databases, "db".table for spreadsheets
    ("db".main.table also works for spreadsheets and is rewritten automatically).

    When 'datasource_id' is given, the session is first synced to exactly that
    datasource: its cache is reset, it is (re-)attached and every other datasource is
    detached. Without it, the query runs against whatever is currently attached.

    If the query references a database or table that does not exist, the response
    contains 'diagnostics' listing the attached databases and the tables of the expected
    database, so the query can be corrected.

    AI Agent Usage:
    - Pass datasource_id for single-datasource questions; use datasources_sync beforehand
      for queries joining several datasources.
    - Use max_rows to limit output; 'is_complete' is False when rows were cut off.
    - On failure, read 'diagnostics.message' before retrying.

    Args:
        context (Context): The MCP context object.
        conversation_id (str): Identifier of the conversation.
        sql (str): The DuckDB SQL to execute.
        datasource_id (str, optional): Datasource to sync (exclusively) before running.
        max_rows (int | None, optional): Maximum rows returned. None returns all rows. Default: 1000.
        format (str, optional): 'json-row' (default), 'json-column' or 'json-values'.
        workspace (str, optional): Workspace directory. Defaults to the configured workspace.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True if the query ran.
            - 'format' (str): The data format.
            - 'data': The rows in the requested format.
            - 'columns' (list[dict]): Column 'name' and 'type'.
            - 'row_count' (int): Number of rows returned.
            - 'total_rows' (int): Number of rows the query produced.
            - 'is_complete' (bool): False if rows were cut off by max_rows.
            - 'sql' (str): The SQL actually executed (after rewriting).
            - 'error' (str, optional) / 'isError' (bool, optional): Present on failure.
            - 'diagnostics' (dict, optional): Present when the query referenced a missing database or table.
            - 'failed' (list[dict], optional): Present when the requested datasource could not be attached.

    Example Successful Response:
        {'success': True, 'format': 'json-row', 'data': [{'id': 1}], 'columns': [{'name': 'id', 'type': 'int32'}],
         'row_count': 1, 'total_rows': 1, 'is_complete': True, 'sql': 'SELECT 1 AS id'}

    Example Error Response:
        {'success': False, 'isError': True, 'error': 'Query failed: Catalog Error: ...',
         'diagnostics': {'expected_database': 'db2', 'attached_databases': ['db1'], 'tables': None, ...}}
    """
    _LOGGER.info(
        f"[mcp_server:query_run] Invoked: conversation_id={conversation_id!r}, "
        f"datasource_id={datasource_id!r}, max_rows={max_rows}, format={format!r}, workspace={workspace!r}"
    )

    result: dict[str, object] = {"success": False}

    try:
        workspace = await _resolve_workspace("query_run", context, workspace)
        session_manager = _get_session_manager(context)

        expected_database = None
        if datasource_id is not None:
            await session_manager.reset_sync_cache(conversation_id, workspace)
            sync_result = await session_manager.sync_datasources(
                conversation_id, workspace, [datasource_id], detach_unlisted=True
            )
            attachment = session_manager.get_attachment(conversation_id, workspace, datasource_id)
            if attachment is None:
                _LOGGER.error(
                    f"[mcp_server:query_run] Datasource '{datasource_id}' could not be attached: "
                    f"{[error.to_dict() for error in sync_result.failed]}"
                )
                errors = "; ".join(str(error) for error in sync_result.failed)
                result["error"] = f"Datasource '{datasource_id}' could not be attached: {errors}"
                result["failed"] = [error.to_dict() for error in sync_result.failed]
                result["isError"] = True
                return result
            expected_database = attachment.logical_database_name

        query_result = await session_manager.run_query(
            conversation_id, workspace, sql, expected_database=expected_database
        )

        arrow_table = query_result.table
        total_rows = arrow_table.num_rows
        if max_rows is not None and total_rows > max_rows:
            arrow_table = arrow_table.slice(0, max_rows)

        estimated_size = arrow_table.num_rows * arrow_table.num_columns * ESTIMATED_BYTES_PER_CELL
        size_error = _check_response_size(f"query in conversation '{conversation_id}'", estimated_size)
        if size_error:
            return size_error

        result.update(
            {
                "success": True,
                "format": format,
                "data": format_table_data(arrow_table, format),
                "columns": [
                    {"name": name, "type": type_name}
                    for name, type_name in zip(query_result.column_names, query_result.column_types)
                ],
                "row_count": arrow_table.num_rows,
                "total_rows": total_rows,
                "is_complete": arrow_table.num_rows == total_rows,
                "sql": query_result.sql,
            }
        )
        _LOGGER.info(
            f"[mcp_server:query_run] Returned {arrow_table.num_rows} of {total_rows} rows "
            f"in {query_result.elapsed_seconds:.3f}s"
        )

    except QueryCatalogError as e:
        _LOGGER.warning(f"[mcp_server:query_run] Catalog error: {e}")
        result["error"] = str(e)
        result["diagnostics"] = e.diagnostics.to_dict()
        result["isError"] = True

    except ValueError as e:
        # Format validation error from formatters package
        _LOGGER.error(f"[mcp_server:query_run] Invalid format parameter: {e!r}")
        result["error"] = f"Invalid format parameter: {type(e).__name__}: {e}"
        result["isError"] = True

    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:query_run] Failed for conversation '{conversation_id}': {e!r}",
            exc_info=True,
        )
        result["error"] = f"Query failed in conversation '{conversation_id}': {type(e).__name__}: {e}"
        result["isError"] = True

    return result
