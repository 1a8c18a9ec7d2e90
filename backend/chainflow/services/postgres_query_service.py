"""
Postgres Query Service.

Runs queries, structured writes and schema introspection against user-owned
Postgres databases through engines handed out by the connection manager.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from fastapi.encoders import jsonable_encoder
from sqlalchemy import text
from sqlalchemy.engine import Engine

from chainflow.engine.errors import ConfigurationError

logger = logging.getLogger(__name__)

_POSITIONAL = re.compile(r"\$(\d+)")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_READ_ONLY_PREFIXES = ("SELECT", "WITH")

WRITE_OPERATIONS = ("INSERT", "UPDATE", "DELETE")


class QueryExecutionError(RuntimeError):
    pass


def bind_positional_params(query: str, params: Optional[Sequence[Any]]) -> tuple[str, Dict[str, Any]]:
    """
    Rewrite ``$1``-style placeholders into named binds.

    Args:
        query: SQL with ``$n`` placeholders.
        params: Positional values; ``$1`` is ``params[0]``.

    Returns:
        The rewritten SQL and the bind dictionary.
    """
    params = list(params or [])
    binds: Dict[str, Any] = {}

    def _replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index < 1 or index > len(params):
            raise ConfigurationError(f"Query references ${index} but {len(params)} params were given")
        binds[f"p{index}"] = params[index - 1]
        return f":p{index}"

    return _POSITIONAL.sub(_replace, query), binds


def validate_identifier(name: str) -> str:
    if not name or not _IDENTIFIER.match(name):
        raise ConfigurationError(f"Invalid SQL identifier: {name!r}")
    return name


def is_read_only(query: str) -> bool:
    return query.strip().upper().startswith(_READ_ONLY_PREFIXES)


def _rows(result) -> List[Dict[str, Any]]:
    return jsonable_encoder([dict(row._mapping) for row in result])


def execute_query(engine: Engine, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
    """
    Execute a query and return its rows as JSON-safe dictionaries.

    Statements that do not return rows yield an empty list.
    """
    if not query or not query.strip():
        raise ConfigurationError("query is required")
    sql, binds = bind_positional_params(query, params)
    try:
        with engine.begin() as connection:
            result = connection.execute(text(sql), binds)
            return _rows(result) if result.returns_rows else []
    except Exception as e:
        raise QueryExecutionError(f"Query execution failed: {e}") from e


def execute_read_query(
    engine: Engine, query: str, params: Optional[Sequence[Any]] = None
) -> List[Dict[str, Any]]:
    """
    Execute a query in a read-only transaction that is always rolled back.

    Postgres rejects data-modifying statements (including writes hidden in a
    ``WITH``) through ``SET TRANSACTION READ ONLY``; SQLite through
    ``PRAGMA query_only``.
    """
    if not query or not query.strip():
        raise ConfigurationError("query is required")
    sql, binds = bind_positional_params(query, params)
    try:
        with engine.connect() as connection:
            dialect = connection.dialect.name
            try:
                if dialect == "postgresql":
                    connection.exec_driver_sql("SET TRANSACTION READ ONLY")
                elif dialect == "sqlite":
                    connection.exec_driver_sql("PRAGMA query_only = ON")
                result = connection.execute(text(sql), binds)
                return _rows(result) if result.returns_rows else []
            finally:
                connection.rollback()
                if dialect == "sqlite":
                    connection.exec_driver_sql("PRAGMA query_only = OFF")
    except Exception as e:
        raise QueryExecutionError(f"Read-only query failed: {e}") from e


def execute_write(
    engine: Engine,
    table: str,
    operation: str,
    data: Optional[Dict[str, Any]] = None,
    where: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    """
    Run an INSERT, UPDATE or DELETE built from column dictionaries.

    Args:
        engine: Target database.
        table: Table name, optionally schema qualified.
        operation: INSERT, UPDATE or DELETE.
        data: Column values for INSERT and UPDATE.
        where: Equality filters, required for UPDATE and DELETE.

    Returns:
        The affected rows (``RETURNING *``).
    """
    operation = (operation or "").upper()
    validate_identifier(table)
    data = data or {}
    where = where or {}
    binds: Dict[str, Any] = {}

    for column in list(data) + list(where):
        validate_identifier(column)

    if operation == "INSERT":
        if not data:
            raise ConfigurationError("data is required for INSERT")
        columns = ", ".join(data)
        placeholders = ", ".join(f":d_{column}" for column in data)
        binds.update({f"d_{column}": value for column, value in data.items()})
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *"
    elif operation in ("UPDATE", "DELETE"):
        if not where:
            raise ConfigurationError(f"WHERE clause required for {operation}")
        where_sql = " AND ".join(f"{column} = :w_{column}" for column in where)
        binds.update({f"w_{column}": value for column, value in where.items()})
        if operation == "UPDATE":
            if not data:
                raise ConfigurationError("data is required for UPDATE")
            set_sql = ", ".join(f"{column} = :d_{column}" for column in data)
            binds.update({f"d_{column}": value for column, value in data.items()})
            sql = f"UPDATE {table} SET {set_sql} WHERE {where_sql} RETURNING *"
        else:
            sql = f"DELETE FROM {table} WHERE {where_sql} RETURNING *"
    else:
        raise ConfigurationError(f"Unknown operation: {operation}")

    try:
        with engine.begin() as connection:
            return _rows(connection.execute(text(sql), binds))
    except Exception as e:
        raise QueryExecutionError(f"Write operation failed: {e}") from e


def introspect_schema(engine: Engine) -> Dict[str, Any]:
    """Describe the tables of the ``public`` schema grouped by table."""
    sql = """
        SELECT table_name, column_name, data_type, is_nullable, column_default
        FROM information_schema.columns
        WHERE table_schema = 'public'
        ORDER BY table_name, ordinal_position
    """
    try:
        with engine.connect() as connection:
            rows = connection.execute(text(sql)).fetchall()
    except Exception as e:
        raise QueryExecutionError(f"Schema introspection failed: {e}") from e

    tables: Dict[str, Dict[str, Any]] = {}
    for table_name, column_name, data_type, is_nullable, column_default in rows:
        table = tables.setdefault(table_name, {"name": table_name, "columns": {}})
        table["columns"][column_name] = {
            "type": data_type,
            "nullable": is_nullable == "YES",
            "default": column_default,
        }
    return {"tables": list(tables.values())}
