"""
AI Memory Service.

Hybrid memory for AI nodes: a user-owned Postgres table when the node is
configured for it, otherwise the internal ``ai_memories`` store with a TTL
and a per-(flow, node) entry cap.
"""

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder

from chainflow.config.settings import Settings, get_settings
from chainflow.database.repositories.ai_memory_repository import AIMemoryRepository
from chainflow.engine.context import ExecutionContext
from chainflow.services import postgres_query_service
from chainflow.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

_SUMMARY_LENGTH = 500


@dataclass
class MemoryConfig:
    use_user_db: bool = False
    db_credential_id: Optional[str] = None
    table_name: Optional[str] = None

    @classmethod
    def from_node_data(cls, node_data: Dict[str, Any]) -> "MemoryConfig":
        return cls(
            use_user_db=bool(node_data.get("useUserDBForMemory", False)),
            db_credential_id=node_data.get("memoryDBCredentialId"),
            table_name=node_data.get("memoryTableName"),
        )

    @property
    def uses_user_table(self) -> bool:
        return bool(self.use_user_db and self.db_credential_id and self.table_name)


class AIMemoryService:
    def __init__(self, context: ExecutionContext, config: MemoryConfig, settings: Optional[Settings] = None):
        self.context = context
        self.config = config
        self.settings = settings or get_settings()

    def load(self, limit: Optional[int] = None) -> List[Any]:
        """Return up to ``limit`` memory entries, newest first."""
        limit = limit or self.settings.ai_memory_limit
        if self.config.uses_user_table:
            table = postgres_query_service.validate_identifier(self.config.table_name)
            engine = self._user_engine()
            return postgres_query_service.execute_query(
                engine,
                f"SELECT * FROM {table} WHERE ai_node_id = $1 ORDER BY created_at DESC LIMIT {int(limit)}",
                [self.context.current_node_id],
            )

        if self.context.db is None:
            return []
        newer_than = utc_now() - timedelta(hours=self.settings.ai_memory_ttl_hours)
        entries = AIMemoryRepository(self.context.db).get_recent(
            self.context.flow_id, self.context.current_node_id, limit, newer_than=newer_than
        )
        return [entry.data for entry in entries]

    def save(self, data: Dict[str, Any]) -> bool:
        """
        Persist a memory snapshot.

        Failures are logged and reported as ``False``; memory never fails a node.
        """
        data = jsonable_encoder(data)
        try:
            if self.config.uses_user_table:
                postgres_query_service.execute_write(
                    self._user_engine(),
                    self.config.table_name,
                    "INSERT",
                    data={
                        "ai_node_id": self.context.current_node_id,
                        "run_id": self.context.run_id,
                        "flow_id": self.context.flow_id,
                        "data": json.dumps(data),
                        "created_at": utc_now(),
                    },
                )
                return True

            if self.context.db is None:
                return False
            repository = AIMemoryRepository(self.context.db)
            repository.add_memory(
                flow_id=self.context.flow_id,
                node_id=self.context.current_node_id,
                user_id=self.context.user_id,
                data=data,
                run_id=self.context.run_id,
                summary=json.dumps(data)[:_SUMMARY_LENGTH],
            )
            pruned = repository.prune(
                self.context.flow_id,
                self.context.current_node_id,
                older_than=utc_now() - timedelta(hours=self.settings.ai_memory_ttl_hours),
                keep=self.settings.ai_memory_max_entries,
            )
            if pruned:
                logger.debug(f"Pruned {pruned} memory entries for node {self.context.current_node_id}")
            return True
        except Exception as e:
            logger.warning(f"Failed to save AI memory for node {self.context.current_node_id}: {e}")
            return False

    def _user_engine(self):
        return self.context.connections.get_engine(
            self.config.db_credential_id, self.context.user_id, self.context.credentials
        )
