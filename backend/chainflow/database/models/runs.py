"""
Run models for Chainflow.

A run is one execution attempt of a flow; node outputs are the append-only
per-node records written while the run executes.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from chainflow.database.models import Base
from chainflow.database.utils.enums import RunStatus
from chainflow.utils.time_utils import utc_now


class NodeOutputResponse(BaseModel):
    """Pydantic model for one node output record."""

    id: int
    run_id: str
    node_id: str
    output: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RunResponse(BaseModel):
    """
    Pydantic model for run responses.

    Fields:
        id: Run identifier.
        flow_id: Flow being executed.
        user_id: Owner of the flow.
        status: QUEUED, RUNNING, COMPLETED, FAILED or CANCELLED.
        input: Trigger payload.
        output: Aggregate result once COMPLETED.
        error: Terminal error once FAILED.
        node_outputs: Per-node records in execution order.
    """

    id: str
    flow_id: str
    user_id: str
    status: RunStatus
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    node_outputs: List[NodeOutputResponse] = []

    model_config = {"from_attributes": True}


class Run(Base):
    """SQLAlchemy model for runs table."""

    __tablename__ = "runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    flow_id = Column(String(36), ForeignKey("flows.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RunStatus.QUEUED.value)
    input = Column(JSON, nullable=True)
    output = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Run(id='{self.id}', flow_id='{self.flow_id}', status='{self.status}')>"


class NodeOutput(Base):
    """
    SQLAlchemy model for node_outputs table.

    Rows are immutable once written. The autoincrement id breaks ties between
    rows created within the same clock tick so that ascending order is always
    execution order.
    """

    __tablename__ = "node_outputs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("runs.id", ondelete="CASCADE"), nullable=False, index=True)
    node_id = Column(String(255), nullable=False)
    output = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<NodeOutput(run_id='{self.run_id}', node_id='{self.node_id}', failed={self.error is not None})>"
