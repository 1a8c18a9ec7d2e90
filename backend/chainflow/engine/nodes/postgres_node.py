"""
Postgres database node.

Reads from or writes to a user-owned Postgres database through the engine
the connection manager keeps for the referenced credential.
"""

from typing import Any, Dict

from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.engine.nodes.base import NodeHandler, require
from chainflow.services import postgres_query_service

MODES = ("READ", "WRITE", "BOTH")


class PostgresDbNodeHandler(NodeHandler):
    """
    Config: ``{credentialId, mode, action, ...}``.

    - ``introspect``: returns ``{status, schema}``.
    - ``query`` (not in WRITE mode): ``{query, queryParams}`` with ``$n``
      placeholders; returns ``{status, rows, count}``.
    - ``write`` (not in READ mode): ``{table, operation, data, where}``;
      returns ``{status, operation, affected, data}``.

    Soft-fail: every error returns ``{status: 'error', error}``.
    """

    type = "postgres_db"

    def execute(self, node_data: Dict[str, Any], input_data: Any, context: ExecutionContext) -> Any:
        mode = str(node_data.get("mode") or "").upper()
        action = node_data.get("action")
        context.logger.info(f"postgres_db: starting {action} operation (mode: {mode})")

        if mode not in MODES:
            context.logger.warning(f"postgres_db: invalid mode {mode}")
            return {"status": "error", "error": f"Invalid mode: {mode}"}

        try:
            credential_id = require(node_data, "credentialId")
            engine = context.connections.get_engine(credential_id, context.user_id, context.credentials)

            if action == "introspect":
                schema = postgres_query_service.introspect_schema(engine)
                context.logger.info(f"postgres_db: introspected {len(schema['tables'])} tables")
                return {"status": "success", "schema": schema}

            if action == "query":
                if mode == "WRITE":
                    raise ConfigurationError("Node mode is WRITE-only, cannot perform READ query")
                rows = postgres_query_service.execute_query(
                    engine, require(node_data, "query"), node_data.get("queryParams") or []
                )
                context.logger.info(f"postgres_db: query returned {len(rows)} rows")
                return {"status": "success", "rows": rows, "count": len(rows)}

            if action == "write":
                if mode == "READ":
                    raise ConfigurationError("Node mode is READ-only, cannot perform WRITE operation")
                operation = str(require(node_data, "operation")).upper()
                rows = postgres_query_service.execute_write(
                    engine,
                    require(node_data, "table"),
                    operation,
                    data=node_data.get("data"),
                    where=node_data.get("where"),
                )
                context.logger.info(f"postgres_db: {operation} affected {len(rows)} rows")
                return {"status": "success", "operation": operation, "affected": len(rows), "data": rows}

            raise ConfigurationError(f"Unknown action: {action}")
        except Exception as e:
            context.logger.error(f"postgres_db: {e}")
            return {"status": "error", "error": str(e)}
