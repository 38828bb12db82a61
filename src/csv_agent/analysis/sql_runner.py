"""Read-only SQL over a single CSV, executed in a throwaway in-memory DuckDB database."""
import logging
import re
from typing import Dict, List, Sequence

import duckdb
import pandas as pd
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from ..core.exceptions import QueryExecutionError, UnsafeQueryError
from .models import ParsedCsv, QueryResult

logger = logging.getLogger(__name__)

TABLE_NAME = "csv_data"
DIALECT = "duckdb"

_SELECT_PREFIX = re.compile(r"\s*(select|with)\b", re.IGNORECASE)

# Statement kinds that must not appear anywhere in a query tree
_WRITE_NODES = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
    exp.Create,
    exp.Drop,
    exp.Command,
)


def parse_select(sql: str) -> exp.Expression:
    """Parse ``sql`` as a single read-only query.

    Raises:
        UnsafeQueryError: If the text does not start with SELECT/WITH, holds more
            than one statement, or contains a data-definition or mutation statement
        QueryExecutionError: If a SELECT cannot be parsed
    """
    if not sql or not _SELECT_PREFIX.match(sql):
        raise UnsafeQueryError("Only SELECT queries are allowed")

    try:
        statements = [s for s in sqlglot.parse(sql, read=DIALECT) if s is not None]
    except SqlglotError as e:
        raise QueryExecutionError(f"SQL parse failed: {e}") from e

    if len(statements) != 1:
        raise UnsafeQueryError("Only a single SELECT statement is allowed")

    tree = statements[0]
    if not isinstance(tree, exp.Query) or tree.find(*_WRITE_NODES) is not None:
        raise UnsafeQueryError("Only SELECT queries are allowed")
    return tree


def is_safe_select(sql: str) -> bool:
    """Return True unless ``sql`` is something other than one read-only SELECT (or WITH ... SELECT).

    Text that starts like a SELECT but does not parse counts as safe here;
    it fails later with a parse error.
    """
    try:
        parse_select(sql)
    except UnsafeQueryError:
        return False
    except QueryExecutionError:
        return True
    return True


def rewrite_tables(tree: exp.Expression) -> exp.Expression:
    """Point every table reference other than a CTE name at the exposed table.

    The original name is kept as the alias so qualified column references
    such as ``sales.Region`` still resolve.
    """
    cte_names = {cte.alias.lower() for cte in tree.find_all(exp.CTE)}
    for table in list(tree.find_all(exp.Table)):
        name = table.name
        if name.lower() in cte_names or (name.lower() == TABLE_NAME and not table.db):
            continue
        alias = table.args.get("alias")
        if alias is None and name and name.lower() != TABLE_NAME:
            alias = exp.TableAlias(this=exp.to_identifier(name))
        table.replace(exp.Table(this=exp.to_identifier(TABLE_NAME), alias=alias))
    return tree


def rewrite_table_name(sql: str) -> str:
    """Return ``sql`` with its table references pointed at ``csv_data``."""
    return rewrite_tables(parse_select(sql)).sql(dialect=DIALECT)


def unique_column_names(headers: Sequence[str]) -> List[str]:
    """Make headers distinct ignoring case, which DuckDB identifiers do.

    Later collisions get a ``_2``, ``_3``... suffix.
    """
    seen: Dict[str, int] = {}
    names = []
    for header in headers:
        name = header
        while name.lower() in seen:
            seen[header.lower()] += 1
            name = f"{header}_{seen[header.lower()]}"
        seen.setdefault(name.lower(), 1)
        names.append(name)
    return names


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _create_table(conn: "duckdb.DuckDBPyConnection", data: ParsedCsv) -> None:
    names = unique_column_names(data.headers)
    column_defs = ", ".join(f"{_quote(n)} VARCHAR" for n in names)
    conn.execute(f"CREATE TABLE {TABLE_NAME} ({column_defs})")
    if data.rows:
        frame = pd.DataFrame(data.rows, columns=data.headers)
        frame.columns = names
        conn.register("csv_rows", frame)
        conn.execute(f"INSERT INTO {TABLE_NAME} SELECT * FROM csv_rows")
        conn.unregister("csv_rows")


def run_select(data: ParsedCsv, sql: str) -> QueryResult:
    """Execute a read-only query against ``data`` exposed as table ``csv_data``.

    Every column is VARCHAR, so numeric comparisons need an explicit
    ``CAST(col AS REAL)``. Headers that differ only by case are suffixed
    (``id``, ``ID_2``). The database lives only for the duration of the call
    and cannot read files or the network.

    Args:
        data: Parsed CSV content
        sql: SELECT statement; every table it names is rewritten to ``csv_data``

    Returns:
        QueryResult with the result columns, rows and row count

    Raises:
        UnsafeQueryError: If ``sql`` is not a read-only SELECT
        QueryExecutionError: If the table cannot be built or DuckDB rejects the statement
    """
    tree = parse_select(sql)
    if not data.headers:
        raise QueryExecutionError("CSV file has no columns")

    statement = rewrite_tables(tree).sql(dialect=DIALECT)

    conn = duckdb.connect(":memory:")
    try:
        _create_table(conn, data)
        conn.execute("SET enable_external_access = false")
        cursor = conn.execute(statement)
        columns = [d[0] for d in cursor.description or []]
        rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
    except duckdb.Error as e:
        logger.info(f"Query rejected by DuckDB: {e}")
        raise QueryExecutionError(f"SQL execution failed: {e}") from e
    finally:
        conn.close()

    return QueryResult(columns=columns, rows=rows, row_count=len(rows))
