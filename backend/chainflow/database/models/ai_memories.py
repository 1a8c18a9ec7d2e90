"""
AI memory model for Chainflow.

Internal fallback store for agent conversation snapshots, keyed by
(flow_id, node_id) and pruned by age and count.
"""

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from chainflow.database.models import Base
from chainflow.utils.time_utils import utc_now


class AIMemory(Base):
    """SQLAlchemy model for ai_memories table."""

    __tablename__ = "ai_memories"
    __table_args__ = (Index("ix_ai_memories_flow_node", "flow_id", "node_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    flow_id = Column(String(36), nullable=False)
    node_id = Column(String(255), nullable=False)
    run_id = Column(String(36), nullable=True)
    user_id = Column(String(255), nullable=False)
    data = Column(JSON, nullable=False)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<AIMemory(flow_id='{self.flow_id}', node_id='{self.node_id}', run_id='{self.run_id}')>"
