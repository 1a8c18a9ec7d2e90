"""
Node Handler Registry.

Static mapping from node type string to handler instance, populated once per
process by ``build_default_registry``.
"""

import logging
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from chainflow.engine.errors import UnknownNodeTypeError
from chainflow.engine.nodes.base import NodeHandler

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Lookup table from node type to handler."""

    def __init__(self, handlers: Optional[Iterable[NodeHandler]] = None):
        self._handlers: Dict[str, NodeHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: NodeHandler) -> None:
        """
        Register a handler under its ``type``.

        Raises:
            ValueError: If the type is empty or already registered.
        """
        if not handler.type:
            raise ValueError(f"Handler {handler!r} has no type")
        if handler.type in self._handlers:
            raise ValueError(f"Node type already registered: {handler.type}")
        self._handlers[handler.type] = handler

    def get(self, node_type: str) -> NodeHandler:
        """
        Return the handler registered for ``node_type``.

        Raises:
            UnknownNodeTypeError: If no handler matches exactly.
        """
        handler = self._handlers.get(node_type)
        if handler is None:
            raise UnknownNodeTypeError(node_type)
        return handler

    def has(self, node_type: str) -> bool:
        return node_type in self._handlers

    def available_types(self) -> List[str]:
        return sorted(self._handlers)


def build_default_registry() -> NodeRegistry:
    """Create a registry with every built-in node type."""
    from chainflow.engine.nodes.ai_node import AINodeHandler
    from chainflow.engine.nodes.basic_nodes import (
        ConditionNodeHandler,
        DelayNodeHandler,
        LogNodeHandler,
        MergeNodeHandler,
    )
    from chainflow.engine.nodes.blockchain_nodes import (
        PythPriceNodeHandler,
        SolanaRpcNodeHandler,
        WalletBalanceNodeHandler,
    )
    from chainflow.engine.nodes.http_nodes import HttpRequestNodeHandler, WebhookNodeHandler
    from chainflow.engine.nodes.notification_nodes import EmailNodeHandler, TelegramNodeHandler
    from chainflow.engine.nodes.postgres_node import PostgresDbNodeHandler

    registry = NodeRegistry(
        [
            HttpRequestNodeHandler(),
            WebhookNodeHandler(),
            ConditionNodeHandler(),
            DelayNodeHandler(),
            LogNodeHandler(),
            MergeNodeHandler(),
            PostgresDbNodeHandler(),
            TelegramNodeHandler(),
            EmailNodeHandler(),
            PythPriceNodeHandler(),
            WalletBalanceNodeHandler(),
            SolanaRpcNodeHandler(),
            AINodeHandler(),
        ]
    )
    logger.info(f"Node registry ready with {len(registry.available_types())} types")
    return registry


@lru_cache(maxsize=1)
def get_registry() -> NodeRegistry:
    """Get the process-wide registry."""
    return build_default_registry()
