"""
Execution context handed to node handlers.

The context is read-mostly: handlers may call the collaborators it carries
(credential vault, connection manager, registry) but the only persisted side
effect of a node is the output record written by the executor.
"""

import dataclasses
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from chainflow.config.logging_config import get_run_logger


def _never_cancelled() -> bool:
    return False


@dataclasses.dataclass(frozen=True)
class ExecutionContext:
    run_id: str
    flow_id: str
    user_id: str
    logger: logging.LoggerAdapter
    current_node_id: Optional[str] = None
    flow_nodes: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    node_outputs: Mapping[str, Any] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    db: Optional[Session] = None
    credentials: Any = None
    connections: Any = None
    registry: Any = None
    rpc_url: Optional[str] = None
    http_timeout: float = 30.0
    is_cancelled: Callable[[], bool] = _never_cancelled

    def for_node(self, node_id: str) -> "ExecutionContext":
        """Return a copy scoped to ``node_id`` with a node-tagged logger."""
        return dataclasses.replace(
            self,
            current_node_id=node_id,
            logger=get_run_logger(self.run_id, node_id),
        )

    def find_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        for node in self.flow_nodes:
            if node.get("id") == node_id:
                return node
        return None
