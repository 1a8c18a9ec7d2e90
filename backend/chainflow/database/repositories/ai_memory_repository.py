"""
AI Memory Repository for Chainflow.

Provides database operations for the internal agent memory store.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from chainflow.database.models.ai_memories import AIMemory

logger = logging.getLogger(__name__)


class AIMemoryRepository:
    """Repository for AI memory database operations."""

    def __init__(self, session: Session):
        self.session = session

    def add_memory(
        self,
        flow_id: str,
        node_id: str,
        user_id: str,
        data: Any,
        run_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> AIMemory:
        try:
            memory = AIMemory(
                flow_id=flow_id,
                node_id=node_id,
                run_id=run_id,
                user_id=user_id,
                data=data,
                summary=summary,
            )
            self.session.add(memory)
            self.session.commit()
            return memory
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error saving AI memory for node {node_id}: {e}")
            raise

    def get_recent(
        self, flow_id: str, node_id: str, limit: int, newer_than: Optional[datetime] = None
    ) -> List[AIMemory]:
        """Return up to ``limit`` entries, newest first."""
        query = self.session.query(AIMemory).filter(
            AIMemory.flow_id == flow_id, AIMemory.node_id == node_id
        )
        if newer_than is not None:
            query = query.filter(AIMemory.created_at >= newer_than)
        return query.order_by(AIMemory.created_at.desc()).limit(limit).all()

    def prune(self, flow_id: str, node_id: str, older_than: datetime, keep: int) -> int:
        """
        Delete expired entries and everything beyond the newest ``keep``.

        Returns:
            Number of deleted rows.
        """
        try:
            deleted = (
                self.session.query(AIMemory)
                .filter(
                    AIMemory.flow_id == flow_id,
                    AIMemory.node_id == node_id,
                    AIMemory.created_at < older_than,
                )
                .delete(synchronize_session=False)
            )
            overflow = (
                self.session.query(AIMemory.id)
                .filter(AIMemory.flow_id == flow_id, AIMemory.node_id == node_id)
                .order_by(AIMemory.created_at.desc())
                .offset(keep)
                .all()
            )
            if overflow:
                deleted += (
                    self.session.query(AIMemory)
                    .filter(AIMemory.id.in_([row[0] for row in overflow]))
                    .delete(synchronize_session=False)
                )
            self.session.commit()
            return deleted
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error pruning AI memory for node {node_id}: {e}")
            raise
