"""
AI Tool Service.

Exposes sibling flow nodes and user databases to the agent as callable tools
and routes the model's tool calls back to the node registry or the Postgres
query service.
"""

import logging
from typing import Any, Dict, Iterable, List, Set, Union

from chainflow.engine.context import ExecutionContext
from chainflow.engine.errors import ConfigurationError
from chainflow.services import postgres_query_service
from chainflow.services.llm.models import ToolCall, ToolDefinition

logger = logging.getLogger(__name__)

NODE_TOOL_PREFIX = "node_"
DB_TOOL_PREFIX = "db_query_"
AI_NODE_TYPE = "ai"


def _ids(entries: Iterable[Union[str, Dict[str, Any]]]) -> List[str]:
    # Accepts plain ids or {id: ...} objects.
    ids = []
    for entry in entries or []:
        entry_id = entry.get("id") if isinstance(entry, dict) else entry
        if entry_id:
            ids.append(str(entry_id))
    return ids


class AIToolService:
    """Tool catalogue and dispatcher for one AI node execution."""

    def __init__(self, context: ExecutionContext):
        self.context = context
        # Names handed out by build_tools; nothing else may be executed.
        self.allowed_tools: Set[str] = set()

    def build_tools(self, available_nodes, available_dbs) -> List[ToolDefinition]:
        """
        Build ``node_<id>`` and ``db_query_<id>`` tool definitions.

        Nodes that are missing from the flow, the calling node itself and
        other AI nodes are left out.
        """
        tools: List[ToolDefinition] = []
        for node_id in _ids(available_nodes):
            node = self.context.find_node(node_id)
            if node is None:
                logger.warning(f"AI tool node {node_id} is not part of flow {self.context.flow_id}")
                continue
            if node_id == self.context.current_node_id or node.get("type") == AI_NODE_TYPE:
                continue
            tools.append(
                ToolDefinition(
                    name=f"{NODE_TOOL_PREFIX}{node_id}",
                    description=f"Execute node: {node.get('type')} ({node_id})",
                    parameters={
                        "type": "object",
                        "properties": {
                            "input": {"type": "object", "description": "Input data for the node"},
                        },
                        "required": ["input"],
                    },
                )
            )

        for credential_id in _ids(available_dbs):
            tools.append(
                ToolDefinition(
                    name=f"{DB_TOOL_PREFIX}{credential_id}",
                    description=f"Run a read-only SQL query (SELECT or WITH) on database {credential_id}",
                    parameters={
                        "type": "object",
                        "properties": {
                            "query": {"type": "string", "description": "SQL query with $1, $2 placeholders"},
                            "params": {
                                "type": "array",
                                "description": "Query parameters",
                                "items": {"type": "string"},
                            },
                        },
                        "required": ["query"],
                    },
                )
            )
        self.allowed_tools = {tool.name for tool in tools}
        return tools

    def execute_tool(self, call: ToolCall) -> Any:
        """
        Execute one tool call.

        Raises:
            ConfigurationError: For unknown tools, tools that were not offered
                by ``build_tools``, forbidden nodes or non read-only queries.
        """
        if not call.name.startswith((NODE_TOOL_PREFIX, DB_TOOL_PREFIX)):
            raise ConfigurationError(f"Unknown tool: {call.name}")
        if call.name not in self.allowed_tools:
            raise ConfigurationError(f"Tool not available: {call.name}")

        if call.name.startswith(NODE_TOOL_PREFIX):
            return self._execute_node(call.name[len(NODE_TOOL_PREFIX):], call.parameters)
        return self._execute_query(call.name[len(DB_TOOL_PREFIX):], call.parameters)

    def _execute_node(self, node_id: str, parameters: Dict[str, Any]) -> Any:
        node = self.context.find_node(node_id)
        if node is None:
            raise ConfigurationError(f"Node {node_id} not found")
        if node_id == self.context.current_node_id or node.get("type") == AI_NODE_TYPE:
            raise ConfigurationError(f"AI nodes cannot be invoked as tools ({node_id})")

        handler = self.context.registry.get(node.get("type"))
        self.context.logger.info(f"ai: tool executing node {node_id} ({node.get('type')})")
        return handler.execute(
            node.get("data") or {},
            parameters.get("input"),
            self.context.for_node(node_id),
        )

    def _execute_query(self, credential_id: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
        query = parameters.get("query")
        if not query:
            raise ConfigurationError("query is required")
        if not postgres_query_service.is_read_only(query):
            raise ConfigurationError("AI database tools may only run SELECT or WITH queries")

        engine = self.context.connections.get_engine(
            credential_id, self.context.user_id, self.context.credentials
        )
        self.context.logger.info(f"ai: tool querying database {credential_id}")
        rows = postgres_query_service.execute_read_query(engine, query, parameters.get("params") or [])
        return {"rows": rows, "count": len(rows)}
