"""
Flow models for Chainflow.

Defines Pydantic and SQLAlchemy models for user-owned automation definitions:
an ordered node list, the connections drawn between nodes, an activation status
and an optional schedule expression.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import JSON, Column, DateTime, String

from chainflow.database.models import Base
from chainflow.database.utils.enums import FlowStatus
from chainflow.utils.time_utils import utc_now


class FlowNode(BaseModel):
    """One configured step of a flow, dispatched by ``type``."""

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class FlowConnection(BaseModel):
    """Directed edge between two nodes; informative for the editor only."""

    model_config = {"populate_by_name": True}

    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")
    condition: Optional[str] = None


def _check_unique_node_ids(nodes: List[FlowNode]) -> List[FlowNode]:
    seen = set()
    for node in nodes:
        if node.id in seen:
            raise ValueError(f"Duplicate node id: {node.id}")
        seen.add(node.id)
    return nodes


class FlowCreate(BaseModel):
    """
    Pydantic model for creating a flow.

    Fields:
        name: Display name of the flow.
        nodes: Ordered node list; array order is execution order.
        connections: Edges drawn in the editor.
        status: Activation status (defaults to DRAFT).
        schedule: Optional interval (``5m``) or cron-like expression.
    """

    name: str
    nodes: List[FlowNode] = Field(default_factory=list)
    connections: List[FlowConnection] = Field(default_factory=list)
    status: FlowStatus = FlowStatus.DRAFT
    schedule: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "SOL price alert",
                "nodes": [
                    {"id": "price", "type": "pyth_price", "data": {"coinId": "solana"}},
                    {"id": "check", "type": "condition", "data": {"expression": "input['price'] > 100"}},
                    {"id": "notify", "type": "log", "data": {"message": "SOL above 100"}},
                ],
                "connections": [{"from": "price", "to": "check"}, {"from": "check", "to": "notify"}],
                "status": "ACTIVE",
                "schedule": "5m",
            }
        }
    }

    @field_validator("nodes")
    @classmethod
    def unique_nodes(cls, nodes):
        return _check_unique_node_ids(nodes)


class FlowUpdate(BaseModel):
    """Pydantic model for partial flow updates; unset fields are left untouched."""

    name: Optional[str] = None
    nodes: Optional[List[FlowNode]] = None
    connections: Optional[List[FlowConnection]] = None
    status: Optional[FlowStatus] = None
    schedule: Optional[str] = None

    @field_validator("nodes")
    @classmethod
    def unique_nodes(cls, nodes):
        if nodes is None:
            return nodes
        return _check_unique_node_ids(nodes)


class FlowResponse(BaseModel):
    """Pydantic model for flow responses."""

    id: str
    user_id: str
    name: str
    nodes: List[Dict[str, Any]]
    connections: List[Dict[str, Any]]
    status: FlowStatus
    schedule: Optional[str] = None
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class Flow(Base):
    """
    SQLAlchemy model for flows table.

    The node graph is stored as JSON. The scheduler only ever writes
    ``last_run_at`` and ``next_run_at``.
    """

    __tablename__ = "flows"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    nodes = Column(JSON, nullable=False, default=list)
    connections = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=FlowStatus.DRAFT.value)
    schedule = Column(String(100), nullable=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    def __repr__(self):
        return f"<Flow(id='{self.id}', name='{self.name}', status='{self.status}', schedule='{self.schedule}')>"
